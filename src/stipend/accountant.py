"""
Allowance accounting.

Computes the successor ContractState for a proposed withdrawal. The
computation is pure: the same (parameters, state, request time, amount)
always yields the same outcome, and nothing is updated until the whole
transition has been checked.

The amount rule depends on two independent conditions: where the request
falls relative to the window boundaries since the state was created, and
whether the covenant accumulates unused allowance.

    INSIDE   no boundary crossed          remaining - requested
    CROSSED  one boundary, none missed    max - requested
                                          (accumulating: max + remaining - requested)
    MISSED   at least one full window     max - requested
             missed                       (accumulating: exact backlog claim, reset to max)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import DEFAULT_DUST_LIMIT
from .contract import ContractParameters, ContractState
from .errors import AccumulationMismatchError, CovenantError, RangeError, TimingError


class WindowStatus(str, Enum):
    UNCONSTRAINED = "unconstrained"
    INSIDE = "inside"
    CROSSED = "crossed"
    MISSED = "missed"


_AmountRule = Callable[[int, int, int], int]

# (status, accumulation) -> f(max_amount, remaining, requested)
_AMOUNT_RULES: dict[tuple[WindowStatus, bool], _AmountRule] = {
    (WindowStatus.UNCONSTRAINED, False): lambda max_amount, remaining, requested: max_amount - requested,
    (WindowStatus.UNCONSTRAINED, True): lambda max_amount, remaining, requested: max_amount - requested,
    (WindowStatus.INSIDE, False): lambda max_amount, remaining, requested: remaining - requested,
    (WindowStatus.INSIDE, True): lambda max_amount, remaining, requested: remaining - requested,
    (WindowStatus.CROSSED, False): lambda max_amount, remaining, requested: max_amount - requested,
    (WindowStatus.CROSSED, True): lambda max_amount, remaining, requested: max_amount + remaining - requested,
    (WindowStatus.MISSED, False): lambda max_amount, remaining, requested: max_amount - requested,
}


@dataclass(frozen=True)
class AllowanceOutcome:
    """Result of an allowance computation: a next state or the rejection."""

    next_state: Optional[ContractState] = None
    error: Optional[CovenantError] = None
    status: Optional[WindowStatus] = None
    missed_epochs: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ContractState:
        if self.error is not None:
            raise self.error
        assert self.next_state is not None
        return self.next_state


def window_status(params: ContractParameters, state: ContractState, elapsed: int) -> WindowStatus:
    if not params.time_constrained:
        return WindowStatus.UNCONSTRAINED
    if elapsed < state.remaining_time:
        return WindowStatus.INSIDE
    if elapsed < state.remaining_time + params.epoch_length:
        return WindowStatus.CROSSED
    return WindowStatus.MISSED


def next_remaining_time(params: ContractParameters, state: ContractState, elapsed: int) -> int:
    """Time left in the window containing the request, in (0, epoch_length]."""
    if not params.time_constrained:
        return 0
    time_difference = state.remaining_time - elapsed % params.epoch_length
    if time_difference > 0:
        return time_difference
    return params.epoch_length - abs(time_difference)


def next_allowance(
    params: ContractParameters,
    state: ContractState,
    request_time: int,
    requested_amount: int,
    dust_limit: int = DEFAULT_DUST_LIMIT,
) -> AllowanceOutcome:
    """Compute the state that follows a withdrawal of requested_amount at request_time."""
    try:
        state.check_invariants(params)
        elapsed = request_time - state.valid_from
        if elapsed < 0:
            raise TimingError(
                f"Request time {request_time} precedes state valid_from {state.valid_from}"
            )
        if requested_amount < dust_limit or requested_amount <= 0:
            raise RangeError(
                f"Requested amount {requested_amount} is below the minimum transferable {dust_limit}",
                amount=requested_amount,
                limit=dust_limit,
            )

        status = window_status(params, state, elapsed)
        missed_epochs = 0
        if status is WindowStatus.MISSED and params.accumulation:
            missed_epochs = _claim_backlog(params, state, elapsed, requested_amount)
            next_amount = params.max_amount_per_epoch
        else:
            _require_within_epoch_max(params, requested_amount)
            rule = _AMOUNT_RULES[(status, params.accumulation)]
            next_amount = rule(params.max_amount_per_epoch, state.remaining_amount, requested_amount)

        if not 0 <= next_amount <= params.max_amount_per_epoch:
            raise RangeError(
                f"Withdrawal of {requested_amount} leaves allowance {next_amount} outside "
                f"[0, {params.max_amount_per_epoch}]",
                amount=requested_amount,
                limit=params.max_amount_per_epoch,
            )

        next_state = state.advance(
            valid_from=request_time,
            remaining_time=next_remaining_time(params, state, elapsed),
            remaining_amount=next_amount,
        )
    except CovenantError as e:
        return AllowanceOutcome(error=e)
    return AllowanceOutcome(next_state=next_state, status=status, missed_epochs=missed_epochs)


def _require_within_epoch_max(params: ContractParameters, requested_amount: int) -> None:
    if requested_amount > params.max_amount_per_epoch:
        raise RangeError(
            f"Requested amount {requested_amount} exceeds max_amount_per_epoch "
            f"{params.max_amount_per_epoch}",
            amount=requested_amount,
            limit=params.max_amount_per_epoch,
        )


def _claim_backlog(
    params: ContractParameters,
    state: ContractState,
    elapsed: int,
    requested_amount: int,
) -> int:
    """Check an accumulated claim over missed windows; return the missed epoch count."""
    missed_epochs, _ = divmod(elapsed, params.epoch_length)
    claimed_epochs, rest = divmod(
        requested_amount - state.remaining_amount, params.max_amount_per_epoch
    )
    if rest != 0 or claimed_epochs != missed_epochs:
        raise AccumulationMismatchError(
            requested=requested_amount,
            expected=state.remaining_amount + missed_epochs * params.max_amount_per_epoch,
            missed_epochs=missed_epochs,
        )
    return missed_epochs
