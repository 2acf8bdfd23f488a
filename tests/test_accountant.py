"""Tests for allowance accounting."""

import pytest
from hypothesis import given, settings, strategies as st

from stipend.accountant import WindowStatus, next_allowance, next_remaining_time, window_status
from stipend.contract import ContractParameters, ContractState, deploy
from stipend.errors import AccumulationMismatchError, RangeError, TimingError


PAYER = "0x" + "11" * 20
PAYEE = "0x" + "22" * 20


def make_params(**kwargs):
    defaults = dict(
        payer=PAYER,
        payee=PAYEE,
        epoch_length=10,
        max_amount_per_epoch=3000,
        miner_fee=100,
    )
    defaults.update(kwargs)
    return ContractParameters(**defaults)


def make_state(valid_from=100, remaining_time=10, remaining_amount=3000):
    return ContractState(
        valid_from=valid_from,
        remaining_time=remaining_time,
        remaining_amount=remaining_amount,
    )


class TestNoTimeConstraint:
    def test_every_spend_resets_from_max(self):
        params = make_params(epoch_length=0)
        state = make_state(remaining_time=0, remaining_amount=500)

        outcome = next_allowance(params, state, 150, 2000)

        assert outcome.ok
        assert outcome.status is WindowStatus.UNCONSTRAINED
        assert outcome.next_state == ContractState(valid_from=150, remaining_time=0, remaining_amount=1000)

    def test_accumulation_flag_is_irrelevant(self):
        params = make_params(epoch_length=0, accumulation=True)
        state = make_state(remaining_time=0, remaining_amount=0)

        next_state = next_allowance(params, state, 100, 3000).unwrap()
        assert next_state.remaining_amount == 0
        assert next_state.remaining_time == 0

    def test_over_max_rejected(self):
        params = make_params(epoch_length=0)
        outcome = next_allowance(params, make_state(remaining_time=0), 100, 3001)
        assert isinstance(outcome.error, RangeError)


class TestInsideWindow:
    @pytest.mark.parametrize("accumulation", [False, True])
    @pytest.mark.parametrize("requested, remaining", [(1000, 0), (600, 400)])
    def test_draws_from_carried_allowance(self, accumulation, requested, remaining):
        params = make_params(accumulation=accumulation)
        state = make_state(remaining_time=2, remaining_amount=1000)

        outcome = next_allowance(params, state, 101, requested)

        assert outcome.ok, outcome.error
        assert outcome.status is WindowStatus.INSIDE
        assert outcome.next_state.remaining_amount == remaining
        assert outcome.next_state.remaining_time == 1
        assert outcome.next_state.valid_from == 101

    @pytest.mark.parametrize("accumulation", [False, True])
    def test_one_over_carried_allowance_rejected(self, accumulation):
        params = make_params(accumulation=accumulation)
        state = make_state(remaining_time=2, remaining_amount=1000)

        outcome = next_allowance(params, state, 101, 1001)

        assert not outcome.ok
        assert isinstance(outcome.error, RangeError)
        with pytest.raises(RangeError):
            outcome.unwrap()


class TestBoundaryCrossed:
    def test_single_crossing_forfeits_unspent(self):
        params = make_params()
        state = make_state(remaining_time=10, remaining_amount=200)

        outcome = next_allowance(params, state, 112, 2500)

        assert outcome.status is WindowStatus.CROSSED
        assert outcome.next_state.remaining_amount == 500
        # windows end at 110, 120
        assert outcome.next_state.remaining_time == 8

    def test_missed_windows_without_accumulation_reset(self):
        params = make_params()
        state = make_state(remaining_time=2, remaining_amount=200)

        outcome = next_allowance(params, state, 112, 2500)

        assert outcome.status is WindowStatus.MISSED
        assert outcome.next_state.remaining_amount == 500
        # boundary exactly at 112 opens a full window
        assert outcome.next_state.remaining_time == 10

    def test_crossing_with_accumulation_carries_unspent(self):
        params = make_params(accumulation=True)
        state = make_state(remaining_time=7, remaining_amount=1000)

        outcome = next_allowance(params, state, 110, 2500)

        assert outcome.status is WindowStatus.CROSSED
        assert outcome.next_state.remaining_amount == 1500
        assert outcome.next_state.remaining_time == 7

    def test_crossing_with_accumulation_cannot_exceed_max(self):
        params = make_params(accumulation=True)
        state = make_state(remaining_time=7, remaining_amount=1000)

        outcome = next_allowance(params, state, 110, 800)

        assert isinstance(outcome.error, RangeError)


class TestBacklogClaim:
    def _setup(self):
        return make_params(accumulation=True), make_state(remaining_time=7, remaining_amount=1000)

    def test_exact_backlog_succeeds(self):
        params, state = self._setup()

        outcome = next_allowance(params, state, 123, 7000)

        assert outcome.ok, outcome.error
        assert outcome.status is WindowStatus.MISSED
        assert outcome.missed_epochs == 2
        assert outcome.next_state.remaining_amount == 3000
        assert outcome.next_state.remaining_time == 4

    def test_three_missed_epochs(self):
        params, state = self._setup()

        outcome = next_allowance(params, state, 133, 10000)

        assert outcome.ok, outcome.error
        assert outcome.missed_epochs == 3
        assert outcome.next_state.remaining_amount == 3000

    @pytest.mark.parametrize("requested", [3000, 6999, 7001, 10000])
    def test_any_other_amount_mismatches(self, requested):
        params, state = self._setup()

        outcome = next_allowance(params, state, 123, requested)

        assert isinstance(outcome.error, AccumulationMismatchError)
        assert outcome.error.expected == 7000
        assert outcome.error.missed_epochs == 2


class TestFreshWindow:
    @pytest.mark.parametrize("accumulation", [False, True])
    @pytest.mark.parametrize("epoch_length", [0, 10])
    def test_full_allowance_succeeds(self, accumulation, epoch_length):
        params = make_params(epoch_length=epoch_length, accumulation=accumulation)
        state = deploy(params, 100)

        next_state = next_allowance(params, state, 100, 3000).unwrap()
        assert next_state.remaining_amount == 0

    @pytest.mark.parametrize("accumulation", [False, True])
    @pytest.mark.parametrize("epoch_length", [0, 10])
    @pytest.mark.parametrize("request_time", [100, 105, 112, 135])
    def test_one_over_max_never_succeeds(self, accumulation, epoch_length, request_time):
        params = make_params(epoch_length=epoch_length, accumulation=accumulation)
        state = deploy(params, 100)

        outcome = next_allowance(params, state, request_time, 3001)
        assert not outcome.ok


class TestPreconditions:
    def test_request_before_valid_from(self):
        outcome = next_allowance(make_params(), make_state(valid_from=100), 99, 1000)
        assert isinstance(outcome.error, TimingError)

    def test_below_dust(self):
        outcome = next_allowance(make_params(), make_state(), 100, 545, dust_limit=546)
        assert isinstance(outcome.error, RangeError)
        assert outcome.error.limit == 546

    def test_inconsistent_state_rejected(self):
        outcome = next_allowance(make_params(), make_state(remaining_amount=3001), 100, 1000)
        assert isinstance(outcome.error, RangeError)

    def test_remaining_time_beyond_epoch_rejected(self):
        outcome = next_allowance(make_params(), make_state(remaining_time=11), 100, 1000)
        assert isinstance(outcome.error, RangeError)


def test_window_status_edges():
    params = make_params()
    state = make_state(remaining_time=7)
    assert window_status(params, state, 6) is WindowStatus.INSIDE
    assert window_status(params, state, 7) is WindowStatus.CROSSED
    assert window_status(params, state, 16) is WindowStatus.CROSSED
    assert window_status(params, state, 17) is WindowStatus.MISSED


def test_next_remaining_time_tracks_window_end():
    params = make_params()
    state = make_state(remaining_time=7)
    # windows end at elapsed 7, 17, 27, ...
    for elapsed in range(0, 60):
        expected = 7 - elapsed if elapsed < 7 else 10 - (elapsed - 7) % 10
        assert next_remaining_time(params, state, elapsed) == expected


@st.composite
def _transitions(draw):
    epoch_length = draw(st.integers(min_value=1, max_value=50))
    max_amount = draw(st.integers(min_value=2, max_value=10_000))
    params = make_params(
        epoch_length=epoch_length,
        max_amount_per_epoch=max_amount,
        accumulation=draw(st.booleans()),
    )
    state = make_state(
        valid_from=draw(st.integers(min_value=0, max_value=1_000)),
        remaining_time=draw(st.integers(min_value=0, max_value=epoch_length)),
        remaining_amount=draw(st.integers(min_value=0, max_value=max_amount)),
    )
    elapsed = draw(st.integers(min_value=0, max_value=10 * epoch_length))
    requested = draw(st.integers(min_value=1, max_value=3 * max_amount))
    return params, state, state.valid_from + elapsed, requested


@settings(max_examples=300)
@given(_transitions())
def test_accepted_transitions_keep_invariants(case):
    params, state, request_time, requested = case

    outcome = next_allowance(params, state, request_time, requested, dust_limit=1)

    if outcome.ok:
        nxt = outcome.next_state
        assert 0 <= nxt.remaining_amount <= params.max_amount_per_epoch
        assert 0 < nxt.remaining_time <= params.epoch_length
        assert nxt.valid_from == request_time >= state.valid_from
    else:
        assert outcome.next_state is None


@given(
    st.integers(min_value=2, max_value=10_000).flatmap(
        lambda m: st.tuples(st.just(m), st.integers(min_value=1, max_value=m))
    ),
    st.integers(min_value=0, max_value=10_000),
)
def test_unconstrained_spend_resets_from_max(amounts, elapsed):
    max_amount, requested = amounts
    params = make_params(epoch_length=0, max_amount_per_epoch=max_amount)
    state = make_state(remaining_time=0, remaining_amount=0)

    nxt = next_allowance(params, state, state.valid_from + elapsed, requested, dust_limit=1).unwrap()

    assert nxt.remaining_amount == max_amount - requested
    assert nxt.remaining_time == 0
