"""Authorization: who is consuming the covenant, and did they sign this transaction."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .contract import ContractParameters, SpenderPolicy
from .errors import AuthorizationError
from .transaction import CandidateTransaction, SpendPath, recover_signer


class Actor(str, Enum):
    PAYER = "payer"
    PAYEE = "payee"
    THIRD_PARTY = "third_party"


@dataclass(frozen=True)
class Authorization:
    actor: Actor
    path: SpendPath
    signer: str


def authorize(params: ContractParameters, tx: CandidateTransaction, commitment: bytes) -> Authorization:
    """Authenticate the signer of tx for the path it selects.

    commitment identifies the covenant instance being consumed; it is part
    of the signed digest, so a signature cannot be replayed elsewhere.
    """
    if not tx.signature:
        raise AuthorizationError(f"{tx.path.value} requires a signature")
    try:
        signer = recover_signer(tx, commitment)
    except Exception as e:
        raise AuthorizationError(f"Signature verification failed: {e}") from e

    if tx.signer is not None and tx.signer != signer:
        raise AuthorizationError(f"Signer mismatch: declared {tx.signer}, recovered {signer}")

    if tx.path is SpendPath.REVOKE:
        if signer != params.payer:
            raise AuthorizationError(f"Revoke must be signed by payer {params.payer}, got {signer}")
        return Authorization(actor=Actor.PAYER, path=tx.path, signer=signer)

    if signer == params.payee:
        return Authorization(actor=Actor.PAYEE, path=tx.path, signer=signer)
    if params.spender_policy is SpenderPolicy.PAYEE_ONLY:
        raise AuthorizationError(f"Spend must be signed by payee {params.payee}, got {signer}")
    return Authorization(actor=Actor.THIRD_PARTY, path=tx.path, signer=signer)
