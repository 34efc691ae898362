"""
Calendar Agent Providers

Collaborator interfaces the engine depends on. Concrete implementations
live outside this package and are injected at construction time.
"""

from calendar_agent.providers.base import (
    BusyWindow,
    CalendarSource,
    FreeBusySchedule,
    ReasoningService,
    ResponseNotRequestedError,
)


__all__ = [
    "BusyWindow",
    "CalendarSource",
    "FreeBusySchedule",
    "ReasoningService",
    "ResponseNotRequestedError",
]
