from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.core.config import CancellationPolicy, CancellationTier
from src.core.exceptions import InvalidTransitionError
from src.modules.appointments.lifecycle import (
    can_cancel,
    can_reschedule,
    compute_cancellation_fee,
    decide_transition,
)
from src.shared.enums import AppointmentStatus as S

START = datetime(2025, 10, 22, 4, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (S.PENDING, S.CONFIRMED),
        (S.PENDING, S.CANCELLED),
        (S.CONFIRMED, S.IN_SERVICE),
        (S.CONFIRMED, S.CANCELLED),
        (S.IN_SERVICE, S.COMPLETED),
    ],
)
def test_allowed_transitions(current, new):
    assert decide_transition(current, new) == new


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (S.PENDING, S.IN_SERVICE),
        (S.PENDING, S.COMPLETED),
        (S.CONFIRMED, S.PENDING),
        (S.IN_SERVICE, S.CANCELLED),
        (S.IN_SERVICE, S.CONFIRMED),
    ],
)
def test_rejected_transitions(current, new):
    with pytest.raises(InvalidTransitionError) as exc_info:
        decide_transition(current, new)
    assert exc_info.value.status_code == 409


@pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELLED])
def test_terminal_states_never_change(terminal):
    for target in S:
        with pytest.raises(InvalidTransitionError, match=f"already {terminal}"):
            decide_transition(terminal, target)


def test_cancel_and_reschedule_guards():
    assert can_cancel(S.PENDING) and can_cancel(S.CONFIRMED)
    assert not can_cancel(S.IN_SERVICE)
    assert can_reschedule(S.CONFIRMED)
    assert not can_reschedule(S.IN_SERVICE)
    assert not can_reschedule(S.COMPLETED)


def test_cancellation_is_free_outside_the_window():
    fee = compute_cancellation_fee(Decimal("5.00"), START, START - timedelta(hours=49), CancellationPolicy())
    assert fee == Decimal("0.00")


def test_cancellation_inside_the_window_charges_the_base_percentage():
    policy = CancellationPolicy()
    assert compute_cancellation_fee(Decimal("5.00"), START, START - timedelta(hours=48), policy) == Decimal("2.50")
    assert compute_cancellation_fee(Decimal("5.00"), START, START - timedelta(hours=3), policy) == Decimal("2.50")


def test_cancellation_tiers_pick_the_tightest_match():
    policy = CancellationPolicy(
        tiers=(
            CancellationTier(within_hours=24, percentage=Decimal("75")),
            CancellationTier(within_hours=2, percentage=Decimal("100")),
        )
    )
    assert compute_cancellation_fee(Decimal("5.00"), START, START - timedelta(hours=30), policy) == Decimal("2.50")
    assert compute_cancellation_fee(Decimal("5.00"), START, START - timedelta(hours=12), policy) == Decimal("3.75")
    assert compute_cancellation_fee(Decimal("5.00"), START, START - timedelta(hours=1), policy) == Decimal("5.00")


def test_cancellation_fee_rounds_half_up_to_cents():
    policy = CancellationPolicy(fee_percentage=Decimal("33"))
    assert compute_cancellation_fee(Decimal("4.50"), START, START, policy) == Decimal("1.49")
