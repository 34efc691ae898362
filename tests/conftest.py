"""Shared test fixtures for Calendar Agent tests.

This module provides common fixtures used across all test modules:
- Event construction in a fixed operating time zone
- Standard scheduling rules and application config
- Decision memory isolated in a temporary directory with a frozen clock
- In-memory calendar and reasoning service doubles

Usage:
    def test_something(make_event, scheduling_rules):
        event = make_event("a", "CEO 1on1", "2026-03-02 10:00", "2026-03-02 11:00")
        ...
"""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from calendar_agent.config_models import AppConfig, SchedulingRules
from calendar_agent.learning.decision_memory import DecisionMemory
from calendar_agent.models import Event
from calendar_agent.providers.base import (
    CalendarSource,
    FreeBusySchedule,
    ReasoningService,
    ResponseNotRequestedError,
)


# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"

TZ_NAME = "Asia/Tokyo"
TZ = ZoneInfo(TZ_NAME)

# Monday 2026-03-02 08:00 local
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=TZ)


def at(value: str) -> datetime:
    """Parse 'YYYY-MM-DD HH:MM' as a local time in the test zone."""
    return datetime.strptime(value, "%Y-%m-%d %H:%M").replace(tzinfo=TZ)


# ─────────────────────────────────────────────────────────────────────────────
# Event Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events with local 'YYYY-MM-DD HH:MM' times.

    Returns:
        Callable(id, subject, start, end, **overrides) -> Event
    """

    def _make(event_id: str, subject: str, start: str, end: str, **overrides: Any) -> Event:
        return Event(
            id=event_id,
            subject=subject,
            start=at(start),
            end=at(end),
            timezone=TZ_NAME,
            **overrides,
        )

    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Configuration Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Application config in the test zone with an isolated decisions directory."""
    return AppConfig(
        timezone=TZ_NAME,
        decisions_dir=str(tmp_path / "decisions"),
        holidays=["2026-03-20"],
    )


@pytest.fixture
def scheduling_rules() -> SchedulingRules:
    """A small rule set covering every tier and three difference rules."""
    return SchedulingRules.model_validate(
        {
            "priorities": {
                "critical": [{"pattern": "CEO", "description": "Executive meeting"}],
                "high": [{"keywords": ["interview"], "description": "Interview"}],
                "medium": [{"keywords": ["sync"], "description": "Team sync"}],
                "low": [
                    {"pattern": "lunch|coffee", "description": "Optional social event"},
                    {"keywords": ["focus"], "attendees_count": {"max": 1}, "description": "Focus time"},
                ],
            },
            "rules": {
                "priority_difference": [
                    {
                        "if_diff_greater_than": 50,
                        "then": "reschedule_lower_priority",
                        "description": "Move the lower-priority meeting",
                    },
                    {
                        "if_diff_greater_than": 20,
                        "then": "suggest_reschedule",
                        "description": "Suggest moving it",
                    },
                    {
                        "if_diff_less_than": 20,
                        "then": "manual_decision",
                        "description": "Priorities are close",
                    },
                ]
            },
        }
    )


# ─────────────────────────────────────────────────────────────────────────────
# Decision Memory Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FrozenClock:
    """Settable clock for decision-memory tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def decision_memory(app_config: AppConfig, scheduling_rules: SchedulingRules, clock: FrozenClock) -> DecisionMemory:
    """DecisionMemory writing under tmp_path with a frozen clock."""
    return DecisionMemory(app_config.decisions_path, app_config, scheduling_rules.learning, clock=clock)


# ─────────────────────────────────────────────────────────────────────────────
# Collaborator Doubles
# ─────────────────────────────────────────────────────────────────────────────


class FakeCalendar(CalendarSource):
    """In-memory calendar source recording every mutation."""

    def __init__(
        self,
        events: list[Event] | None = None,
        schedules: dict[str, FreeBusySchedule] | None = None,
    ):
        self.events = list(events or [])
        self.schedules = dict(schedules or {})
        self.calls: list[tuple[str, ...]] = []
        self.messages: dict[str, str] = {}
        self.fail_ids: set[str] = set()
        self.response_not_requested_ids: set[str] = set()
        self.list_error: Exception | None = None
        self.free_busy_error: Exception | None = None

    async def list_events(self, window_start, window_end):
        if self.list_error:
            raise self.list_error
        return [e for e in self.events if e.start < window_end and e.end > window_start]

    async def get_free_busy(self, attendees, window_start, window_end, interval_minutes=30):
        if self.free_busy_error:
            raise self.free_busy_error
        return {a: self.schedules.get(a, FreeBusySchedule(address=a)) for a in attendees}

    async def update_event(self, event_id, new_start, new_end):
        self.calls.append(("update", event_id, new_start.isoformat()))
        if event_id in self.fail_ids:
            return {"success": False, "error": "Server error"}
        return {"success": True}

    async def decline_event(self, event_id, message):
        self.calls.append(("decline", event_id))
        self.messages[event_id] = message
        if event_id in self.response_not_requested_ids:
            raise ResponseNotRequestedError(event_id)
        if event_id in self.fail_ids:
            raise RuntimeError("Server error")
        return {"success": True}

    async def update_response(self, event_id, response):
        self.calls.append(("response", event_id, response))
        return {"success": True}

    async def cancel_event(self, event_id, message):
        self.calls.append(("cancel", event_id))
        self.messages[event_id] = message
        return {"success": True}


class FakeReasoning(ReasoningService):
    """Reasoning service returning a canned response."""

    def __init__(self, response: dict[str, Any] | None = None, available: bool = True, error: Exception | None = None):
        self.response = response
        self.available = available
        self.error = error
        self.prompts: list[str] = []

    def is_available(self) -> bool:
        return self.available

    async def analyze_structured(self, system_prompt, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def fake_calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def make_calendar() -> type[FakeCalendar]:
    return FakeCalendar


@pytest.fixture
def make_reasoning() -> type[FakeReasoning]:
    return FakeReasoning
