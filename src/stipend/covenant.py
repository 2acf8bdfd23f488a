"""
Covenant evaluation.

Flow for one candidate transaction:
1. Authenticate the actor for the selected path
2. Revoke by the payer is accepted unconditionally
3. Spend must not be past expiration, and must spend the value the
   covenant instance actually holds on the ledger
4. Compute the next allowance state
5. Require the proposed outputs to match the implied payout and continuation

Evaluation is deterministic and keeps no state between calls; the live
ContractState and its locked value are passed in, and the successor
handed back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .accountant import next_allowance
from .codec import contract_commitment
from .config import LedgerRules
from .contract import ContractParameters, ContractState
from .errors import CovenantError, OutputMismatchError
from .expiration import require_not_expired
from .guard import Authorization, authorize
from .outputs import expected_outputs, validate_outputs
from .transaction import CandidateTransaction, Destination, SpendPath, TxOutput

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    CONTINUED = "continued"
    DRAINED = "drained"
    REVOKED = "revoked"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Verdict:
    """Result of evaluating a candidate transaction."""

    accepted: bool
    outcome: Outcome
    next_state: Optional[ContractState] = None
    next_value: Optional[int] = None
    authorization: Optional[Authorization] = None
    error: Optional[CovenantError] = None

    @property
    def reason(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "outcome": self.outcome.value,
            "next_state": self.next_state.to_dict() if self.next_state else None,
            "next_value": str(self.next_value) if self.next_value is not None else None,
            "actor": self.authorization.actor.value if self.authorization else None,
            "error": self.error_kind,
            "reason": self.reason,
        }


class CovenantValidator:
    """Validates candidate transactions against one covenant's terms."""

    def __init__(self, rules: Optional[LedgerRules] = None):
        self.rules = rules or LedgerRules()

    def check(
        self,
        params: ContractParameters,
        state: ContractState,
        tx: CandidateTransaction,
        locked_value: int,
    ) -> Verdict:
        """Evaluate tx, raising the CovenantError that rejects it.

        locked_value is what the consumed covenant instance holds on the
        ledger. A spend must declare exactly that as its input value.
        """
        commitment = contract_commitment(params, state)
        auth = authorize(params, tx, commitment)

        if tx.path is SpendPath.REVOKE:
            return Verdict(accepted=True, outcome=Outcome.REVOKED, authorization=auth)

        params.require_above_dust(self.rules.dust_limit)
        require_not_expired(params, tx.request_time)
        if tx.input_value != locked_value:
            raise OutputMismatchError(
                f"Transaction spends {tx.input_value} but the covenant holds {locked_value}"
            )
        next_state = next_allowance(
            params,
            state,
            tx.request_time,
            tx.requested_amount,
            dust_limit=self.rules.dust_limit,
        ).unwrap()
        expected = expected_outputs(
            params,
            next_state,
            tx.requested_amount,
            locked_value,
            self.rules.dust_limit,
        )
        validate_outputs(expected, tx)

        if len(expected) == 1:
            return Verdict(accepted=True, outcome=Outcome.DRAINED, authorization=auth)
        return Verdict(
            accepted=True,
            outcome=Outcome.CONTINUED,
            next_state=next_state,
            next_value=expected[1].amount,
            authorization=auth,
        )

    def evaluate(
        self,
        params: ContractParameters,
        state: ContractState,
        tx: CandidateTransaction,
        locked_value: int,
    ) -> Verdict:
        """Evaluate tx; rejections come back as a Verdict instead of raising."""
        try:
            verdict = self.check(params, state, tx, locked_value)
        except CovenantError as e:
            logger.info(
                "Covenant rejected %s at %s: %s (%s)",
                tx.path.value,
                tx.request_time,
                e,
                e.kind,
            )
            return Verdict(accepted=False, outcome=Outcome.REJECTED, error=e)

        logger.info(
            "Covenant accepted %s by %s at %s: %s",
            tx.path.value,
            verdict.authorization.signer if verdict.authorization else "?",
            tx.request_time,
            verdict.outcome.value,
        )
        return verdict


def covenant_destination(params: ContractParameters, state: ContractState) -> Destination:
    """Destination that locks funds to this exact covenant instance."""
    return Destination.covenant(contract_commitment(params, state))


def propose_spend(
    params: ContractParameters,
    state: ContractState,
    *,
    request_time: int,
    requested_amount: int,
    input_value: int,
    private_key: Any,
    rules: Optional[LedgerRules] = None,
) -> CandidateTransaction:
    """Build and sign the one spend the covenant will accept for this request.

    Raises the CovenantError the validator would raise for an unauthorized
    amount or time, so a payee learns about a bad request before broadcasting.
    """
    rules = rules or LedgerRules()
    next_state = next_allowance(
        params, state, request_time, requested_amount, dust_limit=rules.dust_limit
    ).unwrap()
    outputs = expected_outputs(params, next_state, requested_amount, input_value, rules.dust_limit)
    tx = CandidateTransaction(
        path=SpendPath.SPEND,
        request_time=request_time,
        input_value=input_value,
        outputs=outputs,
        requested_amount=requested_amount,
    )
    return tx.signed(private_key, contract_commitment(params, state))


def propose_revoke(
    params: ContractParameters,
    state: ContractState,
    *,
    request_time: int,
    input_value: int,
    private_key: Any,
    destination: Optional[Destination] = None,
) -> CandidateTransaction:
    """Build and sign a revoke sweeping the covenant to destination (default: payer)."""
    sweep = destination or Destination.address(params.payer)
    tx = CandidateTransaction(
        path=SpendPath.REVOKE,
        request_time=request_time,
        input_value=input_value,
        outputs=(TxOutput(max(input_value - params.miner_fee, 0), sweep),),
    )
    return tx.signed(private_key, contract_commitment(params, state))
