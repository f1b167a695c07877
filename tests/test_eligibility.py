"""
Tests for donor eligibility.

These tests verify:
1. User solution counts ignore dev fee receipts and other addresses
2. Index normalization and unknown-index rejection
3. The four eligibility clauses, including the recipient exclusion
"""

import pytest

from scavenger_consolidator.eligibility import (
    check_indexes,
    count_user_solutions,
    is_valid_address,
    normalize_indexes,
    resolve_donors,
)
from scavenger_consolidator.errors import ValidationError
from scavenger_consolidator.models import Receipt


class TestCountUserSolutions:

    def test_counts_only_non_dev_fee(self, addresses, receipts):
        counts = count_user_solutions(receipts)

        assert counts[addresses[0].bech32] == 2
        assert counts[addresses[1].bech32] == 1
        assert addresses[2].bech32 not in counts
        assert addresses[3].bech32 not in counts

    def test_empty_ledger(self):
        assert count_user_solutions([]) == {}

    def test_receipts_without_address_ignored(self):
        counts = count_user_solutions([Receipt(address="", is_dev_fee=False)])
        assert counts == {}

    def test_is_pure(self, receipts):
        """Two calls over the same snapshot agree."""
        assert count_user_solutions(receipts) == count_user_solutions(receipts)


class TestAddressValidation:

    @pytest.mark.parametrize("addr", [
        "addr1qxyz0000000000000000000",
        "tnight1qxyz000000000000000000",
    ])
    def test_accepts_known_prefixes(self, addr):
        assert is_valid_address(addr)

    @pytest.mark.parametrize("addr", [
        "addr1short",
        "addr_test1qxyz00000000000000000",
        "stake1uxyz000000000000000000000",
        "",
        None,
        12345,
    ])
    def test_rejects_everything_else(self, addr):
        assert not is_valid_address(addr)


class TestIndexes:

    def test_defaults_to_all_derived(self, addresses):
        assert normalize_indexes(None, addresses) == [0, 1, 2, 3]
        assert normalize_indexes([], addresses) == [0, 1, 2, 3]

    def test_coerces_integer_like_entries(self, addresses):
        assert normalize_indexes([1, "2", 3.0], addresses) == [1, 2, 3]

    def test_negative_and_non_integer_entries_named_in_error(self, addresses):
        with pytest.raises(ValidationError) as exc:
            normalize_indexes([0, -1, 1.5, "x", None, True], addresses)

        assert exc.value.message == "Invalid address indexes: -1, 1.5, x, None, True"

    def test_unknown_indexes_named_in_error(self, addresses):
        with pytest.raises(ValidationError) as exc:
            check_indexes([0, 7, 9], addresses)

        assert exc.value.message == "Invalid address indexes: 7, 9"
        assert exc.value.status == 400

    def test_known_indexes_pass(self, addresses):
        check_indexes([0, 3], addresses)


class TestResolveDonors:

    def test_filters_zero_solution_addresses(self, addresses, receipts):
        counts = count_user_solutions(receipts)
        donors = resolve_donors(addresses, counts, [0, 1, 2, 3])

        assert [d.index for d in donors] == [0, 1]
        assert [d.total_user_solutions for d in donors] == [2, 1]

    def test_excludes_recipient_when_asked(self, addresses, receipts):
        counts = count_user_solutions(receipts)
        donors = resolve_donors(addresses, counts, [0, 1], exclude=addresses[0].bech32)

        assert [d.index for d in donors] == [1]

    def test_no_exclusion_keeps_recipient(self, addresses, receipts):
        counts = count_user_solutions(receipts)
        donors = resolve_donors(addresses, counts, [0, 1])

        assert addresses[0].bech32 in [d.bech32 for d in donors]

    def test_follows_requested_order(self, addresses, receipts):
        counts = count_user_solutions(receipts)
        donors = resolve_donors(addresses, counts, [1, 0])

        assert [d.index for d in donors] == [1, 0]

    def test_empty_when_nothing_eligible(self, addresses):
        assert resolve_donors(addresses, {}, [0, 1, 2, 3]) == []
