"""
Exception taxonomy for the pool sniper.

Decode and compile errors are fatal to the single operation that raised them.
MissingAccountKey is the one condition the resolver treats as an expected skip.
"""

from typing import Iterable


class SniperError(Exception):
    """Base class for every error raised by the sniper core."""


class MalformedPayload(SniperError):
    """Instruction payload is shorter than the fixed pool-creation layout."""


class MalformedAccount(SniperError):
    """Account body is shorter than the fixed order-book layout."""


class MissingAccountKey(SniperError):
    """An instruction references an account index the transaction does not carry."""


class RecordIncomplete(SniperError):
    """A pool record lacks fields required by the requested operation."""

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = tuple(missing_fields)
        super().__init__(f"Pool record missing required fields: {', '.join(self.missing_fields)}")


class PoolNotFound(SniperError):
    """No stored pool record (or ledger transaction) matches the lookup."""


class InvalidAmount(SniperError):
    """Amount is non-positive or does not fit the wire format after scaling."""


class InsufficientBalance(SniperError):
    """Wallet balance is below the fixed safety reserve."""


class SubmissionFailure(SniperError):
    """The ledger rejected the transaction or it failed to confirm."""


class LedgerError(SniperError):
    """An RPC call to the ledger failed."""


class ReserveUnavailable(SniperError):
    """The pool's native vault could not be read."""


class PositionStateError(SniperError):
    """Operation is not allowed in the position's current state."""


class ConfigurationError(SniperError):
    """Required runtime configuration is missing or invalid."""
