"""Tests for expected-output reconstruction and comparison."""

import pytest

from stipend.codec import contract_commitment
from stipend.contract import ContractParameters, ContractState
from stipend.errors import OutputMismatchError, RangeError
from stipend.outputs import continuation_value, expected_outputs, validate_outputs
from stipend.transaction import (
    CandidateTransaction,
    Destination,
    DestinationKind,
    SpendPath,
    TxOutput,
    encode_outputs,
    hash_outputs,
)


PAYER = "0x" + "11" * 20
PAYEE = "0x" + "22" * 20
STRANGER = "0x" + "33" * 20
DUST = 546


@pytest.fixture
def params():
    return ContractParameters(
        payer=PAYER,
        payee=PAYEE,
        epoch_length=10,
        max_amount_per_epoch=3000,
        miner_fee=100,
    )


@pytest.fixture
def next_state():
    return ContractState(valid_from=1005, remaining_time=5, remaining_amount=2000)


def spend(outputs, **kwargs):
    return CandidateTransaction(
        path=SpendPath.SPEND,
        request_time=1005,
        input_value=10_000,
        requested_amount=1000,
        outputs=tuple(outputs),
        **kwargs,
    )


class TestExpectedOutputs:
    def test_payout_then_continuation(self, params, next_state):
        payout, continuation = expected_outputs(params, next_state, 1000, 10_000, DUST)

        assert payout == TxOutput(1000, Destination.address(PAYEE))
        assert continuation.amount == 10_000 - 1000 - 100
        assert continuation.destination.kind is DestinationKind.COVENANT
        assert continuation.destination.payload == contract_commitment(params, next_state)

    def test_final_payout_has_no_continuation(self, params, next_state):
        outputs = expected_outputs(params, next_state, 1000, 1100, DUST)
        assert outputs == (TxOutput(1000, Destination.address(PAYEE)),)

    def test_insufficient_funds(self, params, next_state):
        with pytest.raises(RangeError, match="cannot pay"):
            expected_outputs(params, next_state, 1000, 1099, DUST)

    def test_continuation_below_dust(self, params):
        assert continuation_value(params, 1000, 1100 + DUST, DUST) == DUST
        with pytest.raises(RangeError, match="dust"):
            continuation_value(params, 1000, 1100 + DUST - 1, DUST)


class TestValidateOutputs:
    def test_exact_match_passes(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        validate_outputs(expected, spend(expected))

    def test_reordered_rejected(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        with pytest.raises(OutputMismatchError):
            validate_outputs(expected, spend(reversed(expected)))

    def test_extra_output_rejected(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        extra = expected + (TxOutput(DUST, Destination.address(STRANGER)),)
        with pytest.raises(OutputMismatchError, match="Expected 2 outputs, got 3"):
            validate_outputs(expected, spend(extra))

    def test_missing_continuation_rejected(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        with pytest.raises(OutputMismatchError):
            validate_outputs(expected, spend(expected[:1]))

    def test_misdirected_payout_rejected(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        redirected = (TxOutput(1000, Destination.address(STRANGER)), expected[1])
        with pytest.raises(OutputMismatchError, match="Output 0 destination"):
            validate_outputs(expected, spend(redirected))

    def test_continuation_to_wrong_state_rejected(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        generous = ContractState(valid_from=1005, remaining_time=5, remaining_amount=3000)
        forged = (
            expected[0],
            TxOutput(expected[1].amount, Destination.covenant(contract_commitment(params, generous))),
        )
        with pytest.raises(OutputMismatchError, match="Output 1 destination"):
            validate_outputs(expected, spend(forged))

    def test_wrong_amount_rejected(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        skimmed = (expected[0], TxOutput(expected[1].amount - 1, expected[1].destination))
        with pytest.raises(OutputMismatchError, match="amount"):
            validate_outputs(expected, spend(skimmed))

    def test_declared_hash_must_match_outputs(self, params, next_state):
        expected = expected_outputs(params, next_state, 1000, 10_000, DUST)
        other_hash = hash_outputs(expected[:1])
        with pytest.raises(OutputMismatchError, match="hash"):
            validate_outputs(expected, spend(expected, outputs_hash=other_hash))


def test_output_encoding_layout():
    outputs = (
        TxOutput(1000, Destination.address(PAYEE)),
        TxOutput(2**64 - 1, Destination.covenant(b"\x07" * 32)),
    )
    raw = encode_outputs(outputs)

    assert raw[0] == 2
    assert raw[1:9] == (1000).to_bytes(8, "little")
    assert raw[9] == DestinationKind.ADDRESS
    assert raw[10:30] == bytes.fromhex("22" * 20)
    assert raw[30:38] == b"\xff" * 8
    assert raw[38] == DestinationKind.COVENANT
    assert raw[39:71] == b"\x07" * 32
    assert len(raw) == 71
