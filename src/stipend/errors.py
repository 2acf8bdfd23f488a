"""
Stipend error types.

Rejections are fail-closed: any CovenantError aborts the whole candidate
transaction. Callers decide whether to resubmit a corrected one.
"""

from __future__ import annotations


class StipendError(Exception):
    """Base error for all Stipend operations."""
    pass


class CodecError(StipendError, ValueError):
    """Field does not fit the wire layout, or the encoded bytes are malformed."""
    pass


# Covenant rejections
class CovenantError(StipendError):
    """Base error for a rejected candidate transaction."""

    kind = "covenant"


class AuthorizationError(CovenantError):
    """Missing, invalid, or wrong-signer signature."""

    kind = "authorization"


class RangeError(CovenantError):
    """Amount or resulting allowance outside its bounds."""

    kind = "range"

    def __init__(self, message: str, amount: int | None = None, limit: int | None = None):
        self.amount = amount
        self.limit = limit
        super().__init__(message)


class TimingError(CovenantError):
    """Negative elapsed time, or spend attempted after expiration."""

    kind = "timing"


class AccumulationMismatchError(CovenantError):
    """Backlog withdrawal does not equal missed epochs times the per-epoch maximum."""

    kind = "accumulation_mismatch"

    def __init__(self, requested: int, expected: int, missed_epochs: int):
        self.requested = requested
        self.expected = expected
        self.missed_epochs = missed_epochs
        super().__init__(
            f"Backlog withdrawal {requested} does not match {expected} "
            f"({missed_epochs} missed epochs)"
        )


class OutputMismatchError(CovenantError):
    """Proposed outputs differ from the expected output set."""

    kind = "output_mismatch"
