"""Tests for calendar_agent/calendar/availability.py"""

import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from calendar_agent.calendar.availability import (
    SearchStatus,
    align_down,
    align_up,
    enumerate_slots,
    find_available_slots,
    find_free_gaps,
    pick_best_slot,
    slot_indices,
)
from calendar_agent.calendar.holidays import is_workday
from calendar_agent.config_models import AppConfig, SearchConfig
from calendar_agent.models import ShowAs
from calendar_agent.providers.base import BusyWindow, FreeBusySchedule
from tests.conftest import NOW, TZ, at


def view(*chunks: tuple[str, int]) -> str:
    return "".join(code * count for code, count in chunks)


class TestSlotArithmetic:
    def test_align_down(self):
        assert align_down(at("2026-03-02 10:10")) == at("2026-03-02 10:00")
        assert align_down(at("2026-03-02 10:45")) == at("2026-03-02 10:30")
        assert align_down(at("2026-03-02 10:30")) == at("2026-03-02 10:30")

    def test_align_up(self):
        assert align_up(at("2026-03-02 10:10")) == at("2026-03-02 10:30")
        assert align_up(at("2026-03-02 10:40")) == at("2026-03-02 11:00")
        assert align_up(at("2026-03-02 10:30")) == at("2026-03-02 10:30")

    def test_align_up_drops_seconds(self):
        assert align_up(at("2026-03-02 10:00") + timedelta(seconds=5)) == at("2026-03-02 10:30")

    def test_slot_indices(self):
        origin = at("2026-03-02 08:00")
        assert list(slot_indices(at("2026-03-02 09:00"), at("2026-03-02 10:00"), origin)) == [2, 3]
        assert list(slot_indices(at("2026-03-02 09:00"), at("2026-03-02 09:15"), origin)) == [2]


class TestEnumerateSlots:
    def test_first_candidates_on_empty_calendar(self, app_config):
        slots = enumerate_slots(30, NOW, [], [], app_config)

        assert len(slots) == 20
        assert slots[0].start == at("2026-03-02 09:00")
        assert slots[-1].start == at("2026-03-02 18:30")
        assert slots[-1].end == at("2026-03-02 19:00")

    def test_candidates_sorted_and_capped(self, app_config):
        config = app_config.model_copy(update={"search": SearchConfig(max_candidates=5)})
        slots = enumerate_slots(30, NOW, [], [], config)

        assert len(slots) == 5
        assert [s.start for s in slots] == sorted(s.start for s in slots)

    def test_first_day_respects_lead_time(self, app_config):
        now = at("2026-03-02 10:10")
        slots = enumerate_slots(30, now, [], [], app_config)

        assert slots[0].start == at("2026-03-02 11:00")
        assert all(s.start >= now + timedelta(minutes=30) for s in slots)

    def test_weekends_and_holidays_skipped(self, app_config):
        """Thursday evening search: Friday 3/20 is a holiday, so Monday is first."""
        config = app_config.model_copy(update={"search": SearchConfig(max_candidates=100)})
        slots = enumerate_slots(30, at("2026-03-19 18:40"), [], [], config)

        assert slots[0].start == at("2026-03-23 09:00")
        assert all(is_workday(s.date, config.holidays) for s in slots)
        assert all(s.start.weekday() < 5 for s in slots)

    def test_slots_within_business_hours(self, app_config):
        config = app_config.model_copy(update={"search": SearchConfig(max_candidates=1000)})
        slots = enumerate_slots(60, NOW, [], [], config)

        for slot in slots:
            local_start = slot.start.astimezone(TZ)
            local_end = slot.end.astimezone(TZ)
            assert local_start.hour >= 9
            assert (local_end.hour, local_end.minute) <= (19, 0)

    def test_window_end_clips_search(self, app_config):
        config = app_config.model_copy(update={"search": SearchConfig(days=1, max_candidates=100)})
        slots = enumerate_slots(30, NOW, [], [], config)

        assert {s.date for s in slots} == {date(2026, 3, 2)}

    def test_own_busy_event_blocks(self, app_config, make_event):
        busy = make_event("busy", "Sync", "2026-03-02 09:00", "2026-03-02 10:00")
        slots = enumerate_slots(30, NOW, [busy], [], app_config)
        assert slots[0].start == at("2026-03-02 10:00")

    def test_own_free_event_does_not_block(self, app_config, make_event):
        hold = make_event("hold", "Hold", "2026-03-02 09:00", "2026-03-02 10:00", show_as=ShowAs.FREE)
        slots = enumerate_slots(30, NOW, [hold], [], app_config)
        assert slots[0].start == at("2026-03-02 09:00")

    def test_zero_duration_event_does_not_block(self, app_config, make_event):
        marker = make_event("m", "Marker", "2026-03-02 09:00", "2026-03-02 09:00")
        slots = enumerate_slots(30, NOW, [marker], [], app_config)
        assert slots[0].start == at("2026-03-02 09:00")

    def test_all_day_event_blocks_whole_day(self, app_config, make_event):
        offsite = make_event("off", "Offsite", "2026-03-02 00:00", "2026-03-03 00:00", is_all_day=True)
        slots = enumerate_slots(30, NOW, [offsite], [], app_config)
        assert slots[0].start == at("2026-03-03 09:00")

    def test_free_all_day_event_does_not_block(self, app_config, make_event):
        reminder = make_event(
            "rem", "Payday", "2026-03-02 00:00", "2026-03-03 00:00", is_all_day=True, show_as=ShowAs.FREE
        )
        slots = enumerate_slots(30, NOW, [reminder], [], app_config)
        assert slots[0].start == at("2026-03-02 09:00")

    def test_original_start_skipped(self, app_config, make_event):
        original = make_event("orig", "Lunch", "2026-03-02 09:00", "2026-03-02 09:30")
        slots = enumerate_slots(30, NOW, [original], [], app_config, original_event=original)

        assert slots[0].start == at("2026-03-02 09:30")
        assert all(s.start != original.start for s in slots)

    def test_attendee_busy_day_pushes_to_next_day(self, app_config):
        """Busy ("2") for the rest of day one, free ("0") afterwards."""
        schedule = FreeBusySchedule(
            address="bob@example.com",
            availability_view=view(("2", 32), ("0", 48 * 13)),
        )
        slots = enumerate_slots(30, NOW, [], [schedule], app_config)

        assert all(s.date != date(2026, 3, 2) for s in slots)
        assert slots[0].start == at("2026-03-03 09:00")

    def test_every_covered_code_must_be_free(self, app_config):
        # Index 3 is 09:30 with the view starting at 08:00
        schedule = FreeBusySchedule(address="bob@example.com", availability_view=view(("0", 3), ("1", 1), ("0", 600)))
        slots = enumerate_slots(60, NOW, [], [schedule], app_config)
        assert slots[0].start == at("2026-03-02 10:00")

    def test_missing_view_counts_as_free(self, app_config):
        schedule = FreeBusySchedule(address="bob@example.com", availability_view="")
        slots = enumerate_slots(30, NOW, [], [schedule], app_config)
        assert slots[0].start == at("2026-03-02 09:00")

    def test_busy_window_blocks(self, app_config):
        schedule = FreeBusySchedule(
            address="bob@example.com",
            busy_windows=[BusyWindow(at("2026-03-02 09:00"), at("2026-03-02 11:00"))],
        )
        slots = enumerate_slots(30, NOW, [], [schedule], app_config)
        assert slots[0].start == at("2026-03-02 11:00")

    def test_zero_duration_busy_window_ignored(self, app_config):
        schedule = FreeBusySchedule(
            address="bob@example.com",
            busy_windows=[BusyWindow(at("2026-03-02 09:00"), at("2026-03-02 09:00"))],
        )
        slots = enumerate_slots(30, NOW, [], [schedule], app_config)
        assert slots[0].start == at("2026-03-02 09:00")


NEW_YORK = ZoneInfo("America/New_York")


def ny(text: str) -> datetime:
    return datetime.strptime(text, "%Y-%m-%d %H:%M").replace(tzinfo=NEW_YORK)


class TestDaylightSavingWindow:
    """Clocks in New York go forward on Sunday 2026-03-08; the views start the Friday before."""

    ORIGIN = ny("2026-03-06 08:00")

    @pytest.fixture
    def ny_config(self, tmp_path):
        return AppConfig(
            timezone="America/New_York",
            decisions_dir=str(tmp_path / "decisions"),
            holidays=[],
            search=SearchConfig(days=4, max_candidates=200),
        )

    def test_slot_indices_count_elapsed_time(self):
        # 72 real hours separate Friday 08:00 EST and Monday 09:00 EDT
        indices = slot_indices(ny("2026-03-09 09:00"), ny("2026-03-09 10:00"), self.ORIGIN)
        assert list(indices) == [144, 145]

    def test_attendee_busy_monday_after_clock_change(self, ny_config):
        schedule = FreeBusySchedule(
            address="bob@example.com",
            availability_view=view(("0", 144), ("2", 20), ("0", 40)),
        )
        slots = enumerate_slots(60, self.ORIGIN, [], [schedule], ny_config, origin=self.ORIGIN)

        assert [s for s in slots if s.date == date(2026, 3, 9)] == []
        assert slots[0].start == ny("2026-03-06 09:00")

    def test_first_free_hour_after_clock_change(self, ny_config):
        schedule = FreeBusySchedule(
            address="bob@example.com",
            availability_view=view(("2", 146), ("0", 60)),
        )
        slots = enumerate_slots(60, self.ORIGIN, [], [schedule], ny_config, origin=self.ORIGIN)

        assert slots[0].start == ny("2026-03-09 10:00")


class TestFindAvailableSlots:
    @pytest.mark.asyncio
    async def test_found(self, app_config, make_event, make_calendar):
        original = make_event(
            "orig", "Lunch", "2026-03-02 09:00", "2026-03-02 10:00", attendees=("bob@example.com",)
        )
        calendar = make_calendar(events=[original])

        result = await find_available_slots(calendar, original, ["bob@example.com"], app_config, now=NOW)

        assert result.status == SearchStatus.FOUND
        assert result.success is True
        assert result.best.start == at("2026-03-02 09:30")
        assert result.window_start == at("2026-03-02 08:00")
        assert result.window_end == at("2026-03-16 08:00")

    @pytest.mark.asyncio
    async def test_exhausted_is_not_a_failure(self, app_config, make_event, make_calendar):
        original = make_event("orig", "Lunch", "2026-03-02 09:00", "2026-03-02 10:00")
        calendar = make_calendar(
            schedules={"bob@example.com": FreeBusySchedule("bob@example.com", "2" * 48 * 15)}
        )

        result = await find_available_slots(calendar, original, ["bob@example.com"], app_config, now=NOW)

        assert result.status == SearchStatus.EXHAUSTED
        assert result.success is True
        assert result.candidates == []

    @pytest.mark.asyncio
    async def test_exhausted_log_names_event_id_only(self, app_config, make_event, make_calendar, caplog):
        caplog.set_level(logging.INFO, logger="calendar_agent.calendar.availability")
        original = make_event("orig-42", "Salary review with Dana", "2026-03-02 09:00", "2026-03-02 10:00")
        calendar = make_calendar(
            schedules={"bob@example.com": FreeBusySchedule("bob@example.com", "2" * 48 * 15)}
        )

        await find_available_slots(calendar, original, ["bob@example.com"], app_config, now=NOW)

        assert "orig-42" in caplog.text
        assert "Salary review" not in caplog.text

    @pytest.mark.asyncio
    async def test_calendar_fetch_failure(self, app_config, make_event, make_calendar):
        calendar = make_calendar()
        calendar.list_error = TimeoutError("calendar timed out")
        original = make_event("orig", "Lunch", "2026-03-02 09:00", "2026-03-02 10:00")

        result = await find_available_slots(calendar, original, [], app_config, now=NOW)

        assert result.status == SearchStatus.FETCH_FAILED
        assert result.success is False
        assert "calendar timed out" in result.error

    @pytest.mark.asyncio
    async def test_free_busy_fetch_failure(self, app_config, make_event, make_calendar):
        calendar = make_calendar()
        calendar.free_busy_error = RuntimeError("free/busy unavailable")
        original = make_event("orig", "Lunch", "2026-03-02 09:00", "2026-03-02 10:00")

        result = await find_available_slots(calendar, original, ["bob@example.com"], app_config, now=NOW)

        assert result.status == SearchStatus.FETCH_FAILED
        assert "free/busy" in result.error


class TestFindFreeGaps:
    def test_gaps_between_events(self, app_config, make_event):
        events = [
            make_event("a", "A", "2026-03-02 10:00", "2026-03-02 11:00"),
            make_event("b", "B", "2026-03-02 10:30", "2026-03-02 12:00"),
            make_event("c", "C", "2026-03-02 15:00", "2026-03-02 18:45"),
        ]

        gaps = find_free_gaps(events, date(2026, 3, 2), app_config, duration_minutes=30)

        assert [(g.start, g.end) for g in gaps] == [
            (at("2026-03-02 09:00"), at("2026-03-02 10:00")),
            (at("2026-03-02 12:00"), at("2026-03-02 15:00")),
        ]

    def test_weekend_has_no_gaps(self, app_config):
        assert find_free_gaps([], date(2026, 3, 7), app_config) == []


class TestPickBestSlot:
    @pytest.fixture
    def candidates(self, app_config):
        config = app_config.model_copy(update={"search": SearchConfig(max_candidates=100)})
        return enumerate_slots(30, NOW, [], [], config)

    def test_no_candidates(self):
        assert pick_best_slot([]) is None

    def test_no_preference_returns_first(self, candidates):
        assert pick_best_slot(candidates) is candidates[0]

    def test_afternoon_preference(self, candidates):
        assert pick_best_slot(candidates, "afternoon", TZ).start == at("2026-03-02 12:00")

    def test_evening_preference(self, candidates):
        assert pick_best_slot(candidates, "evening", TZ).start == at("2026-03-02 17:00")

    def test_unknown_preference_returns_first(self, candidates):
        assert pick_best_slot(candidates, "midnight") is candidates[0]
