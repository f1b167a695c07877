"""Request-level errors. Each carries the client-facing status it maps to."""

from __future__ import annotations

from typing import Optional


class ConsolidationError(Exception):
    status = 400

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(ConsolidationError):
    """Bad request shape, invalid address, unknown indexes, no eligible donors."""

    status = 400


class AuthenticationError(ConsolidationError):
    """Wallet could not be unlocked with the supplied secret."""

    status = 401


class NotFoundError(ConsolidationError):
    status = 404


class SigningError(ConsolidationError):
    """Signing failed for one index (unknown index, locked wallet, signer failure)."""

    status = 500
