"""Who may create a booking right now.

Everything here is a pure function of the snapshot passed in. The priority
window is derived from ``priority_timer_started_at`` on every call, so callers
re-evaluate on each read instead of waiting for a timer event.
"""
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from models import Booking, PriorityQueueEntry, SystemState


class BlockReason(str, Enum):
    NO_STATE = "no_state"
    NOT_SIGNED_IN = "not_signed_in"
    ALREADY_BOOKED = "already_booked"
    SYSTEM_CLOSED = "system_closed"
    NOT_IN_QUEUE = "not_in_queue"
    TIMER_NOT_STARTED = "timer_not_started"
    PRIORITY_TIME_OVER = "priority_time_over"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def priority_time_remaining(system_state: Optional[SystemState], now: Optional[datetime] = None) -> int:
    """Whole seconds left in the priority window, 0 when no timer is running."""
    if system_state is None or system_state.priority_timer_started_at is None:
        return 0
    now = _as_utc(now or datetime.now(timezone.utc))
    started = _as_utc(system_state.priority_timer_started_at)
    elapsed = math.floor((now - started).total_seconds())
    return max(0, system_state.priority_timer_duration - elapsed)


def booking_block_reason(
    system_state: Optional[SystemState],
    priority_queue: Iterable[PriorityQueueEntry],
    current_user_id: Optional[str],
    existing_bookings: Iterable[Booking],
    now: Optional[datetime] = None,
) -> Optional[BlockReason]:
    """Return the first rule that stops the user from booking, or None."""
    if system_state is None:
        return BlockReason.NO_STATE
    if not current_user_id:
        return BlockReason.NOT_SIGNED_IN

    if any(booking.user_id == current_user_id for booking in existing_bookings):
        return BlockReason.ALREADY_BOOKED

    if system_state.is_open_for_all:
        return None

    if not system_state.is_priority_mode:
        return BlockReason.SYSTEM_CLOSED

    if not any(entry.user_id == current_user_id for entry in priority_queue):
        return BlockReason.NOT_IN_QUEUE
    if system_state.priority_timer_started_at is None:
        return BlockReason.TIMER_NOT_STARTED
    if priority_time_remaining(system_state, now) <= 0:
        return BlockReason.PRIORITY_TIME_OVER
    return None


def can_book(
    system_state: Optional[SystemState],
    priority_queue: Iterable[PriorityQueueEntry],
    current_user_id: Optional[str],
    existing_bookings: Iterable[Booking],
    now: Optional[datetime] = None,
) -> bool:
    return booking_block_reason(system_state, priority_queue, current_user_id, existing_bookings, now) is None
