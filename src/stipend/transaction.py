"""
Ledger-side view of a candidate transaction.

Outputs are encoded the way the ledger commits to them:

    count(1) || { amount(8, little-endian) kind(1) payload(20|32) }*

and the outputs hash is keccak256 over that encoding. Signatures cover a
sighash binding the consumed covenant instance to the proposed outputs.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from .errors import CodecError
from .identity import (
    ADDRESS_SIZE,
    address_bytes,
    address_from_bytes,
    normalize_address,
    normalize_private_key,
)
from .money import parse_base_units


COMMITMENT_SIZE = 32
MAX_OUTPUTS = 255
SIGHASH_DOMAIN = b"stipend/sighash/v1"

_AMOUNT = struct.Struct("<Q")
_SIGHASH = struct.Struct(">32sBQQQ32s")


class DestinationKind(int, Enum):
    ADDRESS = 0x01
    COVENANT = 0x02


_PAYLOAD_SIZES = {
    DestinationKind.ADDRESS: ADDRESS_SIZE,
    DestinationKind.COVENANT: COMMITMENT_SIZE,
}


@dataclass(frozen=True)
class Destination:
    """Where an output's value is locked: an address, or a covenant commitment."""

    kind: DestinationKind
    payload: bytes

    def __post_init__(self):
        object.__setattr__(self, "kind", DestinationKind(self.kind))
        expected = _PAYLOAD_SIZES[self.kind]
        if len(self.payload) != expected:
            raise CodecError(f"{self.kind.name} destination must be {expected} bytes, got {len(self.payload)}")

    @classmethod
    def address(cls, address: str) -> Destination:
        return cls(DestinationKind.ADDRESS, address_bytes(address))

    @classmethod
    def covenant(cls, commitment: bytes) -> Destination:
        return cls(DestinationKind.COVENANT, bytes(commitment))

    def encode(self) -> bytes:
        return bytes([self.kind.value]) + self.payload

    def describe(self) -> str:
        if self.kind is DestinationKind.ADDRESS:
            return address_from_bytes(self.payload)
        return "covenant:0x" + self.payload.hex()

    def to_dict(self) -> dict:
        return {"kind": self.kind.name.lower(), "payload": "0x" + self.payload.hex()}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Destination:
        kind = DestinationKind[str(d["kind"]).upper()]
        payload = str(d["payload"])
        if kind is DestinationKind.ADDRESS:
            return cls.address(payload)
        return cls(kind, bytes.fromhex(_strip_0x(payload)))


@dataclass(frozen=True)
class TxOutput:
    amount: int
    destination: Destination

    def encode(self) -> bytes:
        try:
            return _AMOUNT.pack(self.amount) + self.destination.encode()
        except struct.error as e:
            raise CodecError(f"Output amount does not fit 64 bits: {self.amount}") from e

    def to_dict(self) -> dict:
        return {"amount": str(self.amount), "destination": self.destination.to_dict()}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> TxOutput:
        return cls(
            amount=parse_base_units(d["amount"], "amount", allow_zero=True),
            destination=Destination.from_dict(d["destination"]),
        )


def encode_outputs(outputs: tuple[TxOutput, ...] | list[TxOutput]) -> bytes:
    if len(outputs) > MAX_OUTPUTS:
        raise CodecError(f"At most {MAX_OUTPUTS} outputs are encodable, got {len(outputs)}")
    return bytes([len(outputs)]) + b"".join(output.encode() for output in outputs)


def hash_outputs(outputs: tuple[TxOutput, ...] | list[TxOutput]) -> bytes:
    return keccak(encode_outputs(outputs))


class SpendPath(str, Enum):
    SPEND = "spend"
    REVOKE = "revoke"


_PATH_TAGS = {SpendPath.SPEND: 0x01, SpendPath.REVOKE: 0x02}


@dataclass(frozen=True)
class CandidateTransaction:
    """A proposed transaction consuming one covenant instance."""

    path: SpendPath
    request_time: int
    input_value: int
    outputs: tuple[TxOutput, ...] = ()
    requested_amount: int = 0
    outputs_hash: Optional[bytes] = None
    signature: Optional[str] = None
    signer: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "path", SpendPath(self.path))
        object.__setattr__(self, "outputs", tuple(self.outputs))
        if self.outputs_hash is None:
            object.__setattr__(self, "outputs_hash", hash_outputs(self.outputs))
        if len(self.outputs_hash) != 32:
            raise CodecError(f"outputs_hash must be 32 bytes, got {len(self.outputs_hash)}")
        if self.signer is not None:
            object.__setattr__(self, "signer", normalize_address(self.signer))

    def sighash(self, commitment: bytes) -> bytes:
        """Digest the signer commits to, bound to the consumed instance."""
        try:
            body = _SIGHASH.pack(
                commitment,
                _PATH_TAGS[self.path],
                self.request_time,
                self.input_value,
                self.requested_amount,
                self.outputs_hash,
            )
        except struct.error as e:
            raise CodecError(f"Transaction fields do not fit sighash layout: {e}") from e
        return keccak(SIGHASH_DOMAIN + body)

    def signed(self, private_key: str | bytes, commitment: bytes) -> CandidateTransaction:
        """Return a copy signed by private_key over this transaction's sighash."""
        account = Account.from_key(normalize_private_key(private_key))
        signable = encode_defunct(primitive=self.sighash(commitment))
        signed = Account.sign_message(signable, private_key=account.key)
        return replace(self, signature="0x" + bytes(signed.signature).hex())

    def to_dict(self) -> dict:
        return {
            "path": self.path.value,
            "request_time": self.request_time,
            "input_value": str(self.input_value),
            "requested_amount": str(self.requested_amount),
            "outputs": [output.to_dict() for output in self.outputs],
            "outputs_hash": "0x" + self.outputs_hash.hex(),
            "signature": self.signature,
            "signer": self.signer,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> CandidateTransaction:
        outputs_hash = d.get("outputs_hash")
        return cls(
            path=SpendPath(d["path"]),
            request_time=int(d["request_time"]),
            input_value=parse_base_units(d["input_value"], "input_value"),
            outputs=tuple(TxOutput.from_dict(o) for o in d.get("outputs", [])),
            requested_amount=parse_base_units(d.get("requested_amount", 0), "requested_amount", allow_zero=True),
            outputs_hash=bytes.fromhex(_strip_0x(outputs_hash)) if outputs_hash else None,
            signature=d.get("signature"),
            signer=d.get("signer"),
        )


def recover_signer(tx: CandidateTransaction, commitment: bytes) -> str:
    """Recover the normalized address that signed tx's sighash."""
    if not tx.signature:
        raise ValueError("Transaction is unsigned")
    signable = encode_defunct(primitive=tx.sighash(commitment))
    recovered = Account.recover_message(
        signable,
        signature=bytes.fromhex(_strip_0x(tx.signature)),
    )
    return normalize_address(recovered)


def _strip_0x(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value
