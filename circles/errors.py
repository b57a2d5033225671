"""Error taxonomy for trust-network aggregation."""

from __future__ import annotations


class CirclesError(Exception):
    """Base class for every error raised by the aggregation engine."""


class InvalidInputError(CirclesError):
    def __init__(self, reason: str, message: str = "") -> None:
        super().__init__(message or reason)
        self.reason = reason


class NotRegisteredError(CirclesError):
    def __init__(self, address: str) -> None:
        super().__init__(f"This address is not registered with Circles: {address}")
        self.address = address


class LedgerError(CirclesError):
    """Failure reported by a remote ledger read."""


class RateLimitedError(LedgerError):
    def __init__(self, message: str = "rate limited", *, attempts: int = 1, status: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.status = status


class LedgerNetworkError(LedgerError):
    def __init__(self, message: str, *, status: int = 0) -> None:
        super().__init__(message)
        self.status = status


class LedgerDataError(LedgerError):
    """The ledger answered, but a row could not be parsed."""


class AccrualError(CirclesError):
    pass


class NoClaimHistoryError(AccrualError):
    def __init__(self) -> None:
        super().__init__(
            "Cannot calculate unclaimed CRC: no personalMint transaction found. "
            "The account may never have claimed or its history is incomplete."
        )


class FutureTimestampError(AccrualError):
    def __init__(self, last_claim_time: object) -> None:
        super().__init__(f"Invalid last claim time {last_claim_time}: date is in the future")
        self.last_claim_time = last_claim_time
