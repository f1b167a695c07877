"""
Tests for the command line interface.

The signer wallet and the HTTP session are replaced with fakes; everything
else (files, argument parsing, run folder artifacts) is real.
"""

import argparse
import csv
import json

import pytest

from scavenger_consolidator import cli
from scavenger_consolidator.submit import SubmissionClient

from conftest import PASSWORD, RECIPIENT, FakeResponse, FakeSession, FakeWallet, RecordingSleep, make_address


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    addresses = [make_address(i) for i in range(3)]
    addresses_file = tmp_path / "derived-addresses.json"
    addresses_file.write_text(json.dumps([
        {"index": a.index, "bech32": a.bech32, "publicKeyHex": a.public_key_hex, "registered": a.registered}
        for a in addresses
    ]))
    receipts_file = tmp_path / "receipts.jsonl"
    receipts_file.write_text("\n".join(json.dumps(r) for r in [
        {"address": addresses[0].bech32},
        {"address": addresses[1].bech32},
        {"address": addresses[1].bech32},
        {"address": addresses[2].bech32, "isDevFee": True},
    ]) + "\n")

    monkeypatch.setattr(cli, "CardanoSignerWallet", lambda path, account=0: FakeWallet(addresses))

    session = FakeSession(default=FakeResponse(200, {"donation_id": "don-1", "solutions_consolidated": 3}))
    real_client = SubmissionClient
    monkeypatch.setattr(
        cli, "SubmissionClient",
        lambda url, **kw: real_client(url, session=session, sleep=RecordingSleep()),
    )

    common = [
        "--addresses-file", str(addresses_file),
        "--receipts-file", str(receipts_file),
    ]
    return {"tmp": tmp_path, "addresses": addresses, "session": session, "common": common}


def only_run_dir(base):
    runs = list(base.iterdir())
    assert len(runs) == 1
    return runs[0]


class TestAddressesCommand:

    def test_table(self, workspace, capsys):
        rc = cli.main(["addresses"] + workspace["common"])

        out = capsys.readouterr().out
        assert rc == 0
        assert "donors: 2" in out
        assert f"suggested recipient: {workspace['addresses'][1].bech32} (2 solutions)" in out

    def test_json(self, workspace, capsys):
        rc = cli.main(["addresses", "--json"] + workspace["common"])

        data = json.loads(capsys.readouterr().out)
        assert rc == 0
        assert [a["totalUserSolutions"] for a in data["addresses"]] == [1, 2, 0]

    def test_missing_wallet_file(self, tmp_path, capsys):
        rc = cli.main(["addresses", "--addresses-file", str(tmp_path / "none.json")])

        assert rc == 2
        assert "No wallet addresses found" in capsys.readouterr().err


class TestProofsCommand:

    def test_writes_out_file(self, workspace, capsys):
        out_file = workspace["tmp"] / "proofs.json"
        rc = cli.main(["proofs", "--mnemonic", PASSWORD, "--challenge", "portal-xyz",
                       "--out", str(out_file)] + workspace["common"])

        assert rc == 0
        data = json.loads(out_file.read_text())
        assert data["challenge"] == "portal-xyz"
        assert data["count"] == 2

    def test_unknown_index(self, workspace, capsys):
        rc = cli.main(["proofs", "--mnemonic", PASSWORD, "--challenge", "c",
                       "--indexes", "0,8"] + workspace["common"])

        assert rc == 2
        assert "Invalid address indexes: 8" in capsys.readouterr().err

    def test_unsigned_entry_warned(self, workspace, capsys, monkeypatch):
        addresses = workspace["addresses"]
        monkeypatch.setattr(cli, "CardanoSignerWallet", lambda path, account=0: FakeWallet(addresses, crashing={1}))
        rc = cli.main(["proofs", "--mnemonic", PASSWORD, "--challenge", "c"] + workspace["common"])

        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert rc == 0
        assert data["proofs"][1]["response"] == {"error": "signer crashed"}
        assert "WARNING: index 1 not signed: signer crashed" in captured.err


class TestConsolidateCommand:

    def test_dry_run_artifacts(self, workspace, capsys):
        out_dir = workspace["tmp"] / "logs"
        rc = cli.main(["consolidate", "--mnemonic", PASSWORD, "--destination-addr", RECIPIENT,
                       "--dry-run", "--out-dir", str(out_dir)] + workspace["common"])

        assert rc == 0
        assert workspace["session"].calls == []

        run_dir = only_run_dir(out_dir)
        records = [json.loads(l) for l in (run_dir / "log.jsonl").read_text().splitlines()]
        assert [r["status_class"] for r in records] == ["dry_run", "dry_run"]
        assert all(r["curl"].startswith("curl -L -X POST") for r in records)

        with (run_dir / "signatures.csv").open() as f:
            rows = list(csv.DictReader(f))
        assert [int(r["index"]) for r in rows] == [0, 1]

        summary = (run_dir / "job_summary.txt").read_text()
        assert "mode           : DRY-RUN" in summary
        assert "dry_run    : 2" in summary

    def test_live_run(self, workspace, capsys):
        out_dir = workspace["tmp"] / "logs"
        rc = cli.main(["consolidate", "--mnemonic", PASSWORD, "--destination-addr", RECIPIENT,
                       "--indexes", "1", "--out-dir", str(out_dir)] + workspace["common"])

        assert rc == 0
        assert len(workspace["session"].calls) == 1

        run_dir = only_run_dir(out_dir)
        with (run_dir / "summary.csv").open() as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["status_class"] == "success"
        assert rows[0]["donation_id"] == "don-1"
        assert rows[0]["solutions_consolidated"] == "3"
        assert "assigned   : 1" in (run_dir / "job_summary.txt").read_text()
        assert "donation_id: don-1" in capsys.readouterr().out

    def test_invalid_destination(self, workspace, capsys):
        out_dir = workspace["tmp"] / "logs"
        rc = cli.main(["consolidate", "--mnemonic", PASSWORD, "--destination-addr", "addr1short",
                       "--out-dir", str(out_dir)] + workspace["common"])

        assert rc == 2
        assert "Invalid recipientAddress" in capsys.readouterr().err
        assert not out_dir.exists()

    def test_wrong_mnemonic(self, workspace, capsys):
        rc = cli.main(["consolidate", "--mnemonic", "wrong words", "--destination-addr", RECIPIENT,
                       "--out-dir", str(workspace["tmp"] / "logs")] + workspace["common"])

        assert rc == 2
        assert workspace["session"].calls == []


class TestParseIndexList:

    def test_parses(self):
        assert cli.parse_index_list("0, 2,,5") == [0, 2, 5]

    def test_rejects_non_integer(self):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_index_list("0,x")
