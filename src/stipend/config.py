"""Ledger rules and environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass


# Smallest output value the ledger will relay.
DEFAULT_DUST_LIMIT = 546
DEFAULT_MINER_FEE = 1000
DEFAULT_LOG_LEVEL = "WARNING"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip()
    if not value.isdigit():
        raise ValueError(f"{name} must be a non-negative integer, got {raw!r}")
    return int(value)


@dataclass(frozen=True)
class LedgerRules:
    """Properties of the underlying ledger the covenant relies on."""

    dust_limit: int = DEFAULT_DUST_LIMIT
    default_miner_fee: int = DEFAULT_MINER_FEE

    def __post_init__(self):
        if self.dust_limit < 0:
            raise ValueError("dust_limit must be >= 0")
        if self.default_miner_fee < 0:
            raise ValueError("default_miner_fee must be >= 0")

    @classmethod
    def from_env(cls) -> LedgerRules:
        return cls(
            dust_limit=_env_int("STIPEND_DUST_LIMIT", DEFAULT_DUST_LIMIT),
            default_miner_fee=_env_int("STIPEND_MINER_FEE", DEFAULT_MINER_FEE),
        )


def log_level_from_env() -> str:
    return os.getenv("STIPEND_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
