"""Expiration gate: past the deadline only the payer's revoke remains."""

from __future__ import annotations

from .contract import ContractParameters
from .errors import TimingError


def is_expired(params: ContractParameters, request_time: int) -> bool:
    return params.expiration is not None and request_time > params.expiration


def require_not_expired(params: ContractParameters, request_time: int) -> None:
    if is_expired(params, request_time):
        raise TimingError(
            f"Spend at {request_time} is past expiration {params.expiration}; only revoke remains"
        )
