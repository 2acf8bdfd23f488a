"""
Contract parameters and state.

ContractParameters are fixed for the lifetime of a covenant instance.
ContractState is replaced by every accepted spend; exactly one state is
live at a time, and the ledger guarantees only one transaction consumes it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional

from .config import DEFAULT_MINER_FEE
from .errors import RangeError
from .identity import normalize_identity
from .money import parse_base_units


MAX_UINT32 = 2**32 - 1
MAX_UINT64 = 2**64 - 1


class SpenderPolicy(str, Enum):
    PAYEE_ONLY = "payee_only"
    UNRESTRICTED = "unrestricted"


@dataclass(frozen=True)
class ContractParameters:
    """Immutable terms of a recurring payment covenant."""

    payer: str
    payee: str
    epoch_length: int
    max_amount_per_epoch: int
    miner_fee: int = DEFAULT_MINER_FEE
    expiration: Optional[int] = None
    accumulation: bool = False
    spender_policy: SpenderPolicy = SpenderPolicy.PAYEE_ONLY

    def __post_init__(self):
        object.__setattr__(self, "payer", normalize_identity(self.payer))
        object.__setattr__(self, "payee", normalize_identity(self.payee))
        object.__setattr__(self, "spender_policy", SpenderPolicy(self.spender_policy))
        if not 0 <= self.epoch_length <= MAX_UINT32:
            raise ValueError("epoch_length must fit in 32 bits and be >= 0")
        if not 0 < self.max_amount_per_epoch <= MAX_UINT64:
            raise ValueError("max_amount_per_epoch must be > 0")
        if not 0 <= self.miner_fee <= MAX_UINT64:
            raise ValueError("miner_fee must be >= 0")
        if self.expiration is not None and not 0 <= self.expiration <= MAX_UINT64:
            raise ValueError("expiration must be >= 0")

    @property
    def time_constrained(self) -> bool:
        return self.epoch_length > 0

    @property
    def spender_unrestricted(self) -> bool:
        return self.spender_policy is SpenderPolicy.UNRESTRICTED

    def require_above_dust(self, dust_limit: int) -> None:
        """Reject terms whose per-epoch maximum the ledger could not carry."""
        if self.max_amount_per_epoch <= dust_limit:
            raise RangeError(
                f"max_amount_per_epoch {self.max_amount_per_epoch} must exceed dust limit {dust_limit}",
                amount=self.max_amount_per_epoch,
                limit=dust_limit,
            )

    def to_dict(self) -> dict:
        return {
            "payer": self.payer,
            "payee": self.payee,
            "epoch_length": self.epoch_length,
            "max_amount_per_epoch": str(self.max_amount_per_epoch),
            "miner_fee": str(self.miner_fee),
            "expiration": self.expiration,
            "accumulation": self.accumulation,
            "spender_policy": self.spender_policy.value,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> ContractParameters:
        expiration = d.get("expiration")
        return cls(
            payer=str(d["payer"]),
            payee=str(d["payee"]),
            epoch_length=int(d["epoch_length"]),
            max_amount_per_epoch=parse_base_units(d["max_amount_per_epoch"], "max_amount_per_epoch"),
            miner_fee=parse_base_units(d.get("miner_fee", DEFAULT_MINER_FEE), "miner_fee", allow_zero=True),
            expiration=int(expiration) if expiration is not None else None,
            accumulation=bool(d.get("accumulation", False)),
            spender_policy=SpenderPolicy(d.get("spender_policy", SpenderPolicy.PAYEE_ONLY.value)),
        )


@dataclass(frozen=True)
class ContractState:
    """Allowance state of one live covenant instance."""

    valid_from: int
    remaining_time: int
    remaining_amount: int

    def __post_init__(self):
        if not 0 <= self.valid_from <= MAX_UINT64:
            raise ValueError("valid_from must be >= 0")
        if not 0 <= self.remaining_time <= MAX_UINT32:
            raise ValueError("remaining_time must fit in 32 bits and be >= 0")
        if not 0 <= self.remaining_amount <= MAX_UINT64:
            raise ValueError("remaining_amount must be >= 0")

    def check_invariants(self, params: ContractParameters) -> None:
        """Raise RangeError unless this state is consistent with the terms."""
        if self.remaining_amount > params.max_amount_per_epoch:
            raise RangeError(
                f"remaining_amount {self.remaining_amount} exceeds max_amount_per_epoch "
                f"{params.max_amount_per_epoch}",
                amount=self.remaining_amount,
                limit=params.max_amount_per_epoch,
            )
        if params.time_constrained and self.remaining_time > params.epoch_length:
            raise RangeError(
                f"remaining_time {self.remaining_time} exceeds epoch_length {params.epoch_length}",
                amount=self.remaining_time,
                limit=params.epoch_length,
            )
        if not params.time_constrained and self.remaining_time != 0:
            raise RangeError("remaining_time must be 0 without an epoch", amount=self.remaining_time, limit=0)

    def advance(self, valid_from: int, remaining_time: int, remaining_amount: int) -> ContractState:
        return replace(
            self,
            valid_from=valid_from,
            remaining_time=remaining_time,
            remaining_amount=remaining_amount,
        )

    def to_dict(self) -> dict:
        return {
            "valid_from": self.valid_from,
            "remaining_time": self.remaining_time,
            "remaining_amount": str(self.remaining_amount),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> ContractState:
        return cls(
            valid_from=int(d["valid_from"]),
            remaining_time=int(d["remaining_time"]),
            remaining_amount=parse_base_units(d["remaining_amount"], "remaining_amount", allow_zero=True),
        )


def deploy(params: ContractParameters, deployed_at: int, dust_limit: Optional[int] = None) -> ContractState:
    """Create the initial state: a full allowance and a full first window."""
    if dust_limit is not None:
        params.require_above_dust(dust_limit)
    return ContractState(
        valid_from=deployed_at,
        remaining_time=params.epoch_length,
        remaining_amount=params.max_amount_per_epoch,
    )
