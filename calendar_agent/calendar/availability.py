"""
Tool: Availability Searcher
Purpose: Find open slots for moving a meeting, honoring every attendee's free/busy data

The search walks a rolling window (default 14 days) in fixed 30-minute steps
inside business hours on workdays. A trial slot [t, t + duration) is accepted
when:
    - it does not overlap any of the user's own busy events
      (show-as "free" never blocks; all-day events block the whole day
      unless marked free; zero-duration items never block)
    - every attendee's availability code covering the slot is "0" (free)
      and no blocking busy window from the feed overlaps it
    - it does not start exactly at the original event's start

On the first day nothing starts before now + 30 minutes, rounded up to a
slot boundary. Free/busy views are indexed from "now" rounded down to a
slot boundary, the same origin the feed is requested with.

The two fetches (own events, attendee free/busy) run concurrently. If either
fails the search reports FETCH_FAILED, which callers must keep distinct from
EXHAUSTED (searched everything, nothing fits).

Usage:
    result = await find_available_slots(calendar, event, attendees, config)
    if result.status == SearchStatus.FOUND:
        slot = result.candidates[0]
"""

import asyncio
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any

from calendar_agent.calendar.holidays import is_workday
from calendar_agent.config_models import AppConfig
from calendar_agent.models import Event, ShowAs, TimeSlotCandidate
from calendar_agent.providers.base import CalendarSource, FreeBusySchedule

logger = logging.getLogger(__name__)


class SearchStatus(str, Enum):
    FOUND = "found"
    EXHAUSTED = "exhausted"
    FETCH_FAILED = "fetch_failed"


@dataclass
class SlotSearchResult:
    """Outcome of one slot search."""

    status: SearchStatus
    candidates: list[TimeSlotCandidate] = field(default_factory=list)
    window_start: datetime | None = None
    window_end: datetime | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status != SearchStatus.FETCH_FAILED

    @property
    def best(self) -> TimeSlotCandidate | None:
        return self.candidates[0] if self.candidates else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "candidates": [c.to_dict() for c in self.candidates],
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "error": self.error,
        }


# =============================================================================
# Slot arithmetic
# =============================================================================


def align_down(moment: datetime, slot_minutes: int = 30) -> datetime:
    """Round down to the previous slot boundary (boundaries counted from midnight)."""
    minutes = moment.hour * 60 + moment.minute
    floored = minutes - minutes % slot_minutes
    return moment.replace(hour=floored // 60, minute=floored % 60, second=0, microsecond=0)


def align_up(moment: datetime, slot_minutes: int = 30) -> datetime:
    """Round up to the next slot boundary; values already on a boundary are kept."""
    floored = align_down(moment, slot_minutes)
    if floored == moment:
        return floored
    return floored + timedelta(minutes=slot_minutes)


def slot_indices(start: datetime, end: datetime, origin: datetime, slot_minutes: int = 30) -> range:
    """
    Indices of the availability codes covering [start, end).

    Codes are counted in elapsed time from origin, not wall-clock time, so
    offsets are taken in UTC.
    """
    width = slot_minutes * 60
    origin_utc = origin.astimezone(timezone.utc)
    first = math.floor((start.astimezone(timezone.utc) - origin_utc).total_seconds() / width)
    last = math.ceil((end.astimezone(timezone.utc) - origin_utc).total_seconds() / width)
    return range(first, max(last, first + 1))


# =============================================================================
# Constraint checks
# =============================================================================


def _all_day_covers(event: Event, day: date, tz) -> bool:
    first = event.start.astimezone(tz).date()
    last = event.end.astimezone(tz).date()
    if last > first:
        # All-day end dates are exclusive
        return first <= day < last
    return day == first


def own_calendar_blocks(
    events: Iterable[Event],
    slot_start: datetime,
    slot_end: datetime,
    tz,
    skip_event_id: str | None = None,
) -> bool:
    """True when one of the user's own events makes the slot unusable."""
    slot_day = slot_start.astimezone(tz).date()
    for event in events:
        if event.id == skip_event_id or event.is_cancelled:
            continue
        if event.show_as == ShowAs.FREE:
            continue
        if event.is_all_day:
            if _all_day_covers(event, slot_day, tz):
                return True
            continue
        if event.is_zero_duration:
            continue
        if event.start < slot_end and event.end > slot_start:
            return True
    return False


def attendees_available(
    schedules: Iterable[FreeBusySchedule],
    slot_start: datetime,
    slot_end: datetime,
    origin: datetime,
    slot_minutes: int = 30,
) -> bool:
    """True when every attendee is free for the whole slot."""
    indices = slot_indices(slot_start, slot_end, origin, slot_minutes)
    for schedule in schedules:
        if not all(schedule.is_free_at(i) for i in indices):
            return False
        for window in schedule.busy_windows:
            if window.is_blocking and window.start < slot_end and window.end > slot_start:
                return False
    return True


# =============================================================================
# Search
# =============================================================================


def enumerate_slots(
    duration_minutes: int,
    now: datetime,
    own_events: list[Event],
    schedules: Iterable[FreeBusySchedule],
    config: AppConfig,
    original_event: Event | None = None,
    origin: datetime | None = None,
) -> list[TimeSlotCandidate]:
    """
    Enumerate every slot satisfying the search constraints.

    Args:
        duration_minutes: Length of the meeting being placed
        now: Current time (timezone-aware)
        own_events: The user's events in the window
        schedules: Free/busy views for the attendees
        config: Application config (time zone, business hours, search, holidays)
        original_event: The event being moved; its own block and its current
            start are excluded
        origin: Start of the free/busy views; defaults to now rounded down

    Returns:
        Candidates ordered by start time, at most `search.max_candidates`
    """
    tz = config.tz
    search = config.search
    step = timedelta(minutes=search.slot_minutes)
    duration = timedelta(minutes=duration_minutes if duration_minutes > 0 else search.slot_minutes)
    schedules = list(schedules)

    local_now = now.astimezone(tz)
    origin = origin or align_down(local_now, search.slot_minutes)
    window_end = origin + timedelta(days=search.days)
    earliest = align_up(local_now + timedelta(minutes=search.min_lead_minutes), search.slot_minutes)

    skip_id = original_event.id if original_event else None
    original_start = original_event.start if original_event else None

    candidates: list[TimeSlotCandidate] = []
    for offset in range(search.days):
        day = local_now.date() + timedelta(days=offset)
        if not is_workday(day, config.holidays):
            continue

        day_start = datetime.combine(day, config.business_hours.start_time, tzinfo=tz)
        day_end = datetime.combine(day, config.business_hours.end_time, tzinfo=tz)
        day_start = max(day_start, earliest)
        day_end = min(day_end, window_end)

        current = day_start
        while current + duration <= day_end:
            slot_end = current + duration
            if original_start is not None and current == original_start:
                current += step
                continue
            if not own_calendar_blocks(own_events, current, slot_end, tz, skip_id) and attendees_available(
                schedules, current, slot_end, origin, search.slot_minutes
            ):
                candidates.append(TimeSlotCandidate(date=day, start=current, end=slot_end))
            current += step

    candidates.sort(key=lambda c: c.start)
    return candidates[: search.max_candidates]


async def find_available_slots(
    source: CalendarSource,
    event: Event,
    attendees: list[str],
    config: AppConfig,
    now: datetime | None = None,
) -> SlotSearchResult:
    """
    Search for new times for an event.

    Args:
        source: Calendar collaborator
        event: The event to move
        attendees: Addresses whose free/busy must be clear, including the user
        config: Application config
        now: Current time; defaults to the wall clock in the configured zone

    Returns:
        SlotSearchResult with FOUND, EXHAUSTED or FETCH_FAILED
    """
    tz = config.tz
    now = now or datetime.now(tz)
    origin = align_down(now.astimezone(tz), config.search.slot_minutes)
    window_end = origin + timedelta(days=config.search.days)

    own_result, free_busy_result = await asyncio.gather(
        source.list_events(origin, window_end),
        source.get_free_busy(list(attendees), origin, window_end, config.search.slot_minutes),
        return_exceptions=True,
    )

    for label, outcome in (("calendar events", own_result), ("free/busy", free_busy_result)):
        if isinstance(outcome, Exception):
            logger.warning(f"Could not fetch {label} for slot search: {outcome}")
            return SlotSearchResult(
                status=SearchStatus.FETCH_FAILED,
                window_start=origin,
                window_end=window_end,
                error=f"Could not fetch {label}: {outcome}",
            )

    schedules = free_busy_result.values() if isinstance(free_busy_result, dict) else free_busy_result
    candidates = enumerate_slots(
        duration_minutes=event.duration_minutes,
        now=now,
        own_events=own_result,
        schedules=schedules,
        config=config,
        original_event=event,
        origin=origin,
    )

    status = SearchStatus.FOUND if candidates else SearchStatus.EXHAUSTED
    if status == SearchStatus.EXHAUSTED:
        logger.info(f"No available slot for event {event.id} in the next {config.search.days} days")
    return SlotSearchResult(status=status, candidates=candidates, window_start=origin, window_end=window_end)


# =============================================================================
# Single-day helpers
# =============================================================================


def find_free_gaps(
    events: list[Event],
    day: date,
    config: AppConfig,
    duration_minutes: int = 30,
) -> list[TimeSlotCandidate]:
    """
    Find free intervals on one day between the user's events.

    Unlike enumerate_slots this returns whole gaps, not fixed-width slots.
    Weekends and holidays yield no gaps.

    Args:
        events: The user's events (any days; only those touching `day` count)
        day: Day to inspect, in the configured time zone
        config: Application config
        duration_minutes: Minimum gap length

    Returns:
        Gaps of at least `duration_minutes`, in time order
    """
    if not is_workday(day, config.holidays):
        return []

    tz = config.tz
    work_start = datetime.combine(day, config.business_hours.start_time, tzinfo=tz)
    work_end = datetime.combine(day, config.business_hours.end_time, tzinfo=tz)
    minimum = timedelta(minutes=duration_minutes)

    busy = sorted(
        (
            e
            for e in events
            if not e.is_all_day
            and not e.is_cancelled
            and not e.is_zero_duration
            and e.show_as != ShowAs.FREE
            and e.start < work_end
            and e.end > work_start
        ),
        key=lambda e: e.start,
    )

    gaps = []
    cursor = work_start
    for event in busy:
        if event.start > cursor and event.start - cursor >= minimum:
            gaps.append(TimeSlotCandidate(date=day, start=cursor, end=event.start))
        cursor = max(cursor, event.end)

    if work_end > cursor and work_end - cursor >= minimum:
        gaps.append(TimeSlotCandidate(date=day, start=cursor, end=work_end))
    return gaps


TIME_PREFERENCES = {
    "morning": lambda hour: hour < 12,
    "afternoon": lambda hour: 12 <= hour < 17,
    "evening": lambda hour: hour >= 17,
}


def pick_best_slot(
    candidates: list[TimeSlotCandidate],
    preferred_time: str | None = None,
    tz=None,
) -> TimeSlotCandidate | None:
    """
    Pick a candidate, favouring a part of the day.

    Args:
        candidates: Candidates in preference order
        preferred_time: "morning", "afternoon" or "evening"
        tz: Zone used to read the hour; defaults to each slot's own zone

    Returns:
        First candidate in the preferred part of the day, else the first one
    """
    if not candidates:
        return None
    preference = TIME_PREFERENCES.get(preferred_time or "")
    if preference is None:
        return candidates[0]
    for candidate in candidates:
        start = candidate.start.astimezone(tz) if tz else candidate.start
        if preference(start.hour):
            return candidate
    return candidates[0]
