"""
Tool: Calendar Agent Provider Base
Purpose: Abstract interfaces for the calendar source and the AI reasoning service

The engine never talks to a network API itself. Concrete providers
(a Microsoft Graph client, a CalDAV bridge, a test double) implement these
interfaces and are injected into ConflictResolutionEngine.

Usage:
    from calendar_agent.providers.base import CalendarSource

    class GraphCalendar(CalendarSource):
        async def list_events(self, window_start, window_end):
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from calendar_agent.models import Event


FREE_CODE = "0"


class ResponseNotRequestedError(Exception):
    """
    Raised by decline_event when the organizer did not request a response.

    The caller is expected to fall back to update_response, which changes
    the user's status without sending a notification.
    """


@dataclass(frozen=True)
class BusyWindow:
    """One busy interval reported by a free/busy feed."""

    start: datetime
    end: datetime
    status: str = "busy"

    @property
    def is_blocking(self) -> bool:
        # Zero-duration windows are feed artifacts
        return self.status != "free" and self.end > self.start


@dataclass
class FreeBusySchedule:
    """
    Free/busy view for one attendee.

    `availability_view` holds one code per fixed-width slot, starting at
    the search-window origin: "0" free, "1" tentative, "2" busy,
    "3" out of office, "4" working elsewhere.
    """

    address: str
    availability_view: str = ""
    busy_windows: list[BusyWindow] = field(default_factory=list)

    def code_at(self, index: int) -> str:
        """Availability code for a slot index; missing data counts as free."""
        if index < 0 or index >= len(self.availability_view):
            return FREE_CODE
        return self.availability_view[index]

    def is_free_at(self, index: int) -> bool:
        return self.code_at(index) == FREE_CODE


class CalendarSource(ABC):
    """
    Read and mutate the user's calendar.

    Read methods raise on failure. Mutation methods return a dict with a
    `success` flag, or raise; the engine treats both as a per-event failure.
    """

    @abstractmethod
    async def list_events(self, window_start: datetime, window_end: datetime) -> list[Event]:
        """
        List the user's own events overlapping a window.

        Args:
            window_start: Inclusive window start
            window_end: Exclusive window end

        Returns:
            Events in any order
        """
        pass

    @abstractmethod
    async def get_free_busy(
        self,
        attendees: list[str],
        window_start: datetime,
        window_end: datetime,
        interval_minutes: int = 30,
    ) -> dict[str, FreeBusySchedule]:
        """
        Get free/busy views for attendees.

        Args:
            attendees: Attendee addresses, usually including the user
            window_start: Origin of the availability view (slot index 0)
            window_end: End of the view
            interval_minutes: Width of one availability code

        Returns:
            FreeBusySchedule keyed by address
        """
        pass

    @abstractmethod
    async def update_event(self, event_id: str, new_start: datetime, new_end: datetime) -> dict[str, Any]:
        """Move an event to a new time."""
        pass

    @abstractmethod
    async def decline_event(self, event_id: str, message: str) -> dict[str, Any]:
        """
        Decline an invitation and notify the organizer.

        Raises:
            ResponseNotRequestedError: If the organizer did not request responses
        """
        pass

    @abstractmethod
    async def update_response(self, event_id: str, response: str) -> dict[str, Any]:
        """Set the user's response status without notifying anyone."""
        pass

    @abstractmethod
    async def cancel_event(self, event_id: str, message: str) -> dict[str, Any]:
        """Cancel an event the user organizes, notifying attendees."""
        pass


class ReasoningService(ABC):
    """Optional AI service used to refine rule-based proposals."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the service is configured and reachable. Checked once per engine."""
        pass

    @abstractmethod
    async def analyze_structured(self, system_prompt: str, prompt: str) -> dict[str, Any]:
        """
        Request a structured (JSON) analysis.

        Returns:
            dict with `success`, `result` (parsed JSON object) and `error`
        """
        pass
