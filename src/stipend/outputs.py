"""
Output validation.

A spend must declare exactly the outputs the covenant implies: the payout
to the payee, then the continuation locked to the commitment of the next
state. The comparison is on ledger-encoded bytes, so amounts, destinations,
order and output count all have to match.
"""

from __future__ import annotations

from typing import Optional, Sequence

from eth_utils import keccak

from .codec import contract_commitment
from .contract import ContractParameters, ContractState
from .errors import OutputMismatchError, RangeError
from .transaction import CandidateTransaction, Destination, TxOutput, encode_outputs


def continuation_value(params: ContractParameters, requested_amount: int, input_value: int, dust_limit: int) -> int:
    """Value left in the covenant after a withdrawal; 0 means a final payout."""
    remaining = input_value - requested_amount - params.miner_fee
    if remaining < 0:
        raise RangeError(
            f"Covenant holds {input_value}, cannot pay {requested_amount} plus fee {params.miner_fee}",
            amount=requested_amount,
            limit=max(input_value - params.miner_fee, 0),
        )
    if 0 < remaining < dust_limit:
        raise RangeError(
            f"Continuation value {remaining} is below dust limit {dust_limit}",
            amount=remaining,
            limit=dust_limit,
        )
    return remaining


def expected_outputs(
    params: ContractParameters,
    next_state: ContractState,
    requested_amount: int,
    input_value: int,
    dust_limit: int,
) -> tuple[TxOutput, ...]:
    payout = TxOutput(requested_amount, Destination.address(params.payee))
    remaining = continuation_value(params, requested_amount, input_value, dust_limit)
    if remaining == 0:
        return (payout,)
    continuation = TxOutput(remaining, Destination.covenant(contract_commitment(params, next_state)))
    return (payout, continuation)


def validate_outputs(expected: Sequence[TxOutput], tx: CandidateTransaction) -> None:
    """Raise OutputMismatchError unless tx declares exactly the expected outputs."""
    actual = encode_outputs(tx.outputs)
    if keccak(actual) != tx.outputs_hash:
        raise OutputMismatchError("Declared outputs hash does not match the proposed outputs")
    if actual != encode_outputs(expected):
        raise OutputMismatchError(_describe_mismatch(expected, tx.outputs) or "Proposed outputs differ")


def _describe_mismatch(expected: Sequence[TxOutput], actual: Sequence[TxOutput]) -> Optional[str]:
    if len(expected) != len(actual):
        return f"Expected {len(expected)} outputs, got {len(actual)}"
    for index, (want, got) in enumerate(zip(expected, actual)):
        if want.destination != got.destination:
            return (
                f"Output {index} destination {got.destination.describe()} "
                f"should be {want.destination.describe()}"
            )
        if want.amount != got.amount:
            return f"Output {index} amount {got.amount} should be {want.amount}"
    return None
