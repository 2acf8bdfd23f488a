"""
Fixed-width wire layout for covenant parameters and state.

Every deployed covenant commits to these bytes, so field order and widths
are a compatibility contract: changing either orphans existing instances.

    version(1) flags(1) payer(20) payee(20) epoch_length(4)
    max_amount_per_epoch(8) miner_fee(8) expiration(8)
    valid_from(8) remaining_time(4) remaining_amount(8)

All integers are unsigned big-endian. An unset expiration encodes as 0
with the expiration flag cleared.
"""

from __future__ import annotations

import struct

from eth_utils import keccak

from .contract import ContractParameters, ContractState, SpenderPolicy
from .errors import CodecError
from .identity import address_bytes, address_from_bytes


LAYOUT_VERSION = 1

FLAG_ACCUMULATION = 0x01
FLAG_UNRESTRICTED_SPENDER = 0x02
FLAG_EXPIRATION = 0x04
_KNOWN_FLAGS = FLAG_ACCUMULATION | FLAG_UNRESTRICTED_SPENDER | FLAG_EXPIRATION

_PARAMETERS = struct.Struct(">BB20s20sIQQQ")
_STATE = struct.Struct(">QIQ")

PARAMETERS_SIZE = _PARAMETERS.size
STATE_SIZE = _STATE.size
CONTRACT_SIZE = PARAMETERS_SIZE + STATE_SIZE


def encode_parameters(params: ContractParameters) -> bytes:
    flags = 0
    if params.accumulation:
        flags |= FLAG_ACCUMULATION
    if params.spender_unrestricted:
        flags |= FLAG_UNRESTRICTED_SPENDER
    if params.expiration is not None:
        flags |= FLAG_EXPIRATION
    try:
        return _PARAMETERS.pack(
            LAYOUT_VERSION,
            flags,
            address_bytes(params.payer),
            address_bytes(params.payee),
            params.epoch_length,
            params.max_amount_per_epoch,
            params.miner_fee,
            params.expiration or 0,
        )
    except struct.error as e:
        raise CodecError(f"Parameters do not fit wire layout: {e}") from e


def encode_state(state: ContractState) -> bytes:
    try:
        return _STATE.pack(state.valid_from, state.remaining_time, state.remaining_amount)
    except struct.error as e:
        raise CodecError(f"State does not fit wire layout: {e}") from e


def encode_contract(params: ContractParameters, state: ContractState) -> bytes:
    return encode_parameters(params) + encode_state(state)


def decode_parameters(data: bytes) -> ContractParameters:
    if len(data) != PARAMETERS_SIZE:
        raise CodecError(f"Parameters must be {PARAMETERS_SIZE} bytes, got {len(data)}")
    (
        version,
        flags,
        payer,
        payee,
        epoch_length,
        max_amount,
        miner_fee,
        expiration,
    ) = _PARAMETERS.unpack(data)
    if version != LAYOUT_VERSION:
        raise CodecError(f"Unsupported layout version: {version}")
    if flags & ~_KNOWN_FLAGS:
        raise CodecError(f"Unknown flag bits: {flags:#04x}")
    if not flags & FLAG_EXPIRATION and expiration != 0:
        raise CodecError("Expiration set without expiration flag")
    try:
        return ContractParameters(
            payer=address_from_bytes(payer),
            payee=address_from_bytes(payee),
            epoch_length=epoch_length,
            max_amount_per_epoch=max_amount,
            miner_fee=miner_fee,
            expiration=expiration if flags & FLAG_EXPIRATION else None,
            accumulation=bool(flags & FLAG_ACCUMULATION),
            spender_policy=(
                SpenderPolicy.UNRESTRICTED
                if flags & FLAG_UNRESTRICTED_SPENDER
                else SpenderPolicy.PAYEE_ONLY
            ),
        )
    except ValueError as e:
        raise CodecError(f"Invalid encoded parameters: {e}") from e


def decode_state(data: bytes) -> ContractState:
    if len(data) != STATE_SIZE:
        raise CodecError(f"State must be {STATE_SIZE} bytes, got {len(data)}")
    valid_from, remaining_time, remaining_amount = _STATE.unpack(data)
    return ContractState(
        valid_from=valid_from,
        remaining_time=remaining_time,
        remaining_amount=remaining_amount,
    )


def decode_contract(data: bytes) -> tuple[ContractParameters, ContractState]:
    if len(data) != CONTRACT_SIZE:
        raise CodecError(f"Contract must be {CONTRACT_SIZE} bytes, got {len(data)}")
    return decode_parameters(data[:PARAMETERS_SIZE]), decode_state(data[PARAMETERS_SIZE:])


def contract_commitment(params: ContractParameters, state: ContractState) -> bytes:
    """keccak256 of the encoded contract; the continuation destination payload."""
    return keccak(encode_contract(params, state))
