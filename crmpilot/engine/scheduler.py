"""Free-slot finding and meeting-slot distribution.

Two pieces:
    1. find_free_slots(): sweep each business day's busy intervals and
       return the gaps inside working hours
    2. distribute_slots(): greedily hand consecutive free slots to a list
       of target accounts

Pure computation, no I/O. Busy intervals come from the calendar provider
(or nothing, when it is not connected).

Usage:
    from crmpilot.engine.scheduler import find_free_slots, distribute_slots

    slots = find_free_slots(date(2026, 3, 2), date(2026, 3, 6), busy)
    allocations = distribute_slots(slots, accounts)
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional, Sequence

from crmpilot.core.exceptions import ValidationError
from crmpilot.core.logging import get_logger

logger = get_logger(__name__)

NOON_MINUTE = 12 * 60
MINUTES_PER_DAY = 24 * 60

PREFERENCES = ("any", "morning", "afternoon")

# Upper bound of slots proposed to a single account
MAX_SLOTS_PER_ACCOUNT = 3


def minute_label(minute: int) -> str:
    """Format minutes-from-midnight as ``9:00`` / ``14:30``."""
    return f"{minute // 60}:{minute % 60:02d}"


def day_label(day: date) -> str:
    """Short human label, e.g. ``Monday 2/3``."""
    return f"{day:%A} {day.day}/{day.month}"


def add_business_days(start_date: date, business_days: int) -> date:
    """Add business days to a date (skip weekends).

    Args:
        start_date: Starting date
        business_days: Number of business days to add

    Returns:
        Resulting date
    """
    result = start_date
    days_added = 0

    while days_added < business_days:
        result += timedelta(days=1)
        # 5 = Saturday, 6 = Sunday
        if result.weekday() < 5:
            days_added += 1

    return result


@dataclass(frozen=True)
class FreeSlot:
    """A free window on one day, in minutes from midnight."""

    day: date
    start_minute: int
    end_minute: int

    @property
    def duration_min(self) -> int:
        return self.end_minute - self.start_minute

    @property
    def day_label(self) -> str:
        return day_label(self.day)

    @property
    def start_label(self) -> str:
        return minute_label(self.start_minute)

    @property
    def end_label(self) -> str:
        return minute_label(self.end_minute)

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.day, time()) + timedelta(minutes=self.start_minute)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "dayLabel": self.day_label,
            "start": self.start_label,
            "end": self.end_label,
            "startMinute": self.start_minute,
            "endMinute": self.end_minute,
            "durationMin": self.duration_min,
        }


def _matches_preference(start_minute: int, end_minute: int, preference: str) -> bool:
    if preference == "morning":
        return end_minute <= NOON_MINUTE
    if preference == "afternoon":
        return start_minute >= NOON_MINUTE
    return True


def _busy_minutes_for_day(
    day: date, busy: Sequence[tuple[datetime, datetime]]
) -> list[tuple[int, int]]:
    """Busy intervals overlapping ``day``, clipped to it, sorted by start."""
    day_start = datetime.combine(day, time())
    day_end = day_start + timedelta(days=1)

    intervals = []
    for start, end in busy:
        if start >= day_end or end <= day_start:
            continue
        start_min = 0 if start <= day_start else int((start - day_start).total_seconds() // 60)
        end_min = (
            MINUTES_PER_DAY if end >= day_end else -(-int((end - day_start).total_seconds()) // 60)
        )
        intervals.append((start_min, end_min))

    intervals.sort()
    return intervals


def find_free_slots(
    range_start: date,
    range_end: date,
    busy: Iterable[tuple[datetime, datetime]],
    work_start_hour: int = 9,
    work_end_hour: int = 18,
    duration_min: int = 30,
    preference: str = "any",
) -> list[FreeSlot]:
    """Find free windows on each business day of an inclusive date range.

    Each emitted slot spans the whole gap between commitments, not just
    the meeting length. Overlapping busy intervals are tolerated.

    Args:
        range_start: First day to scan
        range_end: Last day to scan (inclusive)
        busy: (start, end) naive local datetimes of calendar commitments
        work_start_hour: Hour the working day starts
        work_end_hour: Hour the working day ends
        duration_min: Minimum gap length worth proposing
        preference: "any", "morning" (ends by noon) or "afternoon" (starts at noon or later)

    Returns:
        Slots ordered by (day, start)

    Raises:
        ValidationError: If hours, duration or preference are invalid
    """
    if preference not in PREFERENCES:
        raise ValidationError(f"Unknown slot preference: {preference}")
    if not 0 <= work_start_hour < work_end_hour <= 24:
        raise ValidationError(f"Invalid working hours: {work_start_hour}-{work_end_hour}")
    if duration_min <= 0:
        raise ValidationError("Meeting duration must be positive")

    busy_list = [(start, end) for start, end in busy if end > start]
    start_minute = work_start_hour * 60
    end_minute = work_end_hour * 60
    slots: list[FreeSlot] = []

    day = range_start
    while day <= range_end:
        if day.weekday() >= 5:
            day += timedelta(days=1)
            continue

        cursor = start_minute
        for busy_start, busy_end in _busy_minutes_for_day(day, busy_list):
            if busy_start >= end_minute:
                break
            if busy_start > cursor and busy_start - cursor >= duration_min:
                if _matches_preference(cursor, busy_start, preference):
                    slots.append(FreeSlot(day, cursor, busy_start))
            cursor = max(cursor, busy_end)

        if end_minute - cursor >= duration_min and _matches_preference(
            cursor, end_minute, preference
        ):
            slots.append(FreeSlot(day, cursor, end_minute))

        day += timedelta(days=1)

    logger.debug(
        "Free slots computed",
        extra={"context": {
            "range_start": range_start,
            "range_end": range_end,
            "busy": len(busy_list),
            "slots": len(slots),
        }},
    )
    return slots


# =============================================================================
# DISTRIBUTION
# =============================================================================


@dataclass
class SlotAllocation:
    """Slots proposed to one target."""

    target: Any
    slots: list[FreeSlot] = field(default_factory=list)
    reused: bool = False


def slots_per_target(total_slots: int, target_count: int) -> int:
    """How many slots each target gets: between 1 and 3."""
    return min(MAX_SLOTS_PER_ACCOUNT, max(1, total_slots // max(target_count, 1)))


def distribute_slots(slots: Sequence[FreeSlot], targets: Sequence[Any]) -> list[SlotAllocation]:
    """Greedy, order-sensitive allocation of free slots to targets.

    Each target takes the next consecutive unused slots. Once the pool is
    exhausted, later targets are offered the first slot again.

    Args:
        slots: Ordered free slots
        targets: Accounts (or anything) to allocate to, in priority order

    Returns:
        One allocation per target, in target order
    """
    per_target = slots_per_target(len(slots), len(targets))
    allocations: list[SlotAllocation] = []
    index = 0

    for target in targets:
        chosen = list(slots[index:index + per_target])
        index += len(chosen)
        allocation = SlotAllocation(target=target, slots=chosen)
        if not chosen and slots:
            allocation.slots = [slots[0]]
            allocation.reused = True
        allocations.append(allocation)

    return allocations


def meeting_window_label(slot: FreeSlot, duration_min: int) -> str:
    """Proposed meeting time at the start of a slot, e.g. ``9:00 - 9:30``."""
    end = min(slot.start_minute + duration_min, slot.end_minute)
    return f"{slot.start_label} - {minute_label(end)}"


def default_range(today: date, business_days: int = 5) -> tuple[date, date]:
    """Today through ``business_days`` business days ahead."""
    return today, add_business_days(today, business_days)


def parse_day(value: Optional[str], fallback: date) -> date:
    """Parse a ``YYYY-MM-DD`` string, or return ``fallback`` when empty.

    Raises:
        ValidationError: If the string is not a date
    """
    if not value:
        return fallback
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")
