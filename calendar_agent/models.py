"""
Tool: Calendar Agent Models
Purpose: Data structures for conflict detection, scoring, resolution and learning

Usage:
    from calendar_agent.models import Event, ConflictGroup, ResolutionProposal, Decision

Events are immutable snapshots taken at query time. Proposals are rebuilt on
every run and never persisted; only Decisions reach the decision log.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


# Bumped whenever the persisted Decision shape changes
DECISION_SCHEMA_VERSION = 1


class ShowAs(str, Enum):
    """Declared busy-state of a calendar item."""

    FREE = "free"
    TENTATIVE = "tentative"
    BUSY = "busy"
    OUT_OF_OFFICE = "oof"
    WORKING_ELSEWHERE = "workingElsewhere"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "ShowAs":
        """Parse a provider value, falling back to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ResponseStatus(str, Enum):
    """The current user's own response to an event."""

    NONE = "none"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ORGANIZER = "organizer"

    @classmethod
    def parse(cls, value: Any) -> "ResponseStatus":
        """Parse a provider value, falling back to NONE."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


class PriorityLevel(str, Enum):
    """
    Priority tiers in evaluation order.

    Each tier maps to a fixed score so that scoring stays a pure function
    of the rule set and the event.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def score(self) -> int:
        scores = {
            "critical": 100,
            "high": 75,
            "medium": 50,
            "low": 25,
        }
        return scores[self.value]


class ResolutionAction(str, Enum):
    """
    Resolution classes a priority-difference rule can select.

    The discriminant travels with every proposal; nothing downstream
    inspects the human-readable description to recover it.
    """

    RESCHEDULE_LOWER_PRIORITY = "reschedule_lower_priority"
    SUGGEST_RESCHEDULE = "suggest_reschedule"
    DECLINE_LOWER_PRIORITY = "decline_lower_priority"
    KEEP_BOTH = "keep_both"
    MANUAL_DECISION = "manual_decision"

    @property
    def decision_action(self) -> "DecisionAction":
        """The calendar operation this resolution class leads to."""
        if self in (ResolutionAction.RESCHEDULE_LOWER_PRIORITY, ResolutionAction.SUGGEST_RESCHEDULE):
            return DecisionAction.RESCHEDULE
        if self == ResolutionAction.DECLINE_LOWER_PRIORITY:
            return DecisionAction.DECLINE
        return DecisionAction.KEEP


class DecisionAction(str, Enum):
    """What actually happens to the targeted events."""

    RESCHEDULE = "reschedule"
    DECLINE = "decline"
    KEEP = "keep"


class UserAction(str, Enum):
    """How the user answered a proposal."""

    APPROVE = "approve"
    MODIFY = "modify"
    SKIP = "skip"


@dataclass(frozen=True)
class Event:
    """
    Immutable snapshot of a calendar item at query time.

    start/end are timezone-aware instants; `timezone` is the display zone
    the provider reported. Zero-duration items occur in upstream free/busy
    feeds and are treated as ignorable rather than busy.
    """

    id: str
    subject: str
    start: datetime
    end: datetime
    timezone: str = "UTC"
    organizer: str = ""
    attendees: tuple[str, ...] = ()
    is_all_day: bool = False
    is_cancelled: bool = False
    show_as: ShowAs = ShowAs.BUSY
    response_status: ResponseStatus = ResponseStatus.NONE
    response_requested: bool = True
    is_recurring: bool = False

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Event {self.id} ends before it starts")
        object.__setattr__(self, "attendees", tuple(self.attendees))
        object.__setattr__(self, "show_as", ShowAs.parse(self.show_as))
        object.__setattr__(self, "response_status", ResponseStatus.parse(self.response_status))

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    @property
    def attendee_count(self) -> int:
        return len(self.attendees)

    @property
    def is_organizer(self) -> bool:
        return self.response_status == ResponseStatus.ORGANIZER

    @property
    def is_zero_duration(self) -> bool:
        return self.start == self.end

    def overlaps(self, other: "Event") -> bool:
        """Half-open interval overlap: touching boundaries do not overlap."""
        return other.start < self.end and other.end > self.start

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "subject": self.subject,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "timezone": self.timezone,
            "organizer": self.organizer,
            "attendees": list(self.attendees),
            "is_all_day": self.is_all_day,
            "is_cancelled": self.is_cancelled,
            "show_as": self.show_as.value,
            "response_status": self.response_status.value,
            "response_requested": self.response_requested,
            "is_recurring": self.is_recurring,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        """Create from dict."""
        data = data.copy()
        for time_field in ["start", "end"]:
            if isinstance(data.get(time_field), str):
                data[time_field] = datetime.fromisoformat(data[time_field])
        data["attendees"] = tuple(data.get("attendees") or ())
        return cls(**data)


@dataclass(frozen=True)
class ConflictGroup:
    """
    Two or more events whose intervals form a connected overlap graph.

    Events are held in start-time order.
    """

    events: tuple[Event, ...]

    def __post_init__(self):
        if len(self.events) < 2:
            raise ValueError("A conflict group needs at least two events")
        ordered = tuple(sorted(self.events, key=lambda e: (e.start, e.end, e.id)))
        object.__setattr__(self, "events", ordered)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def start_time(self) -> datetime:
        return min(e.start for e in self.events)

    @property
    def end_time(self) -> datetime:
        return max(e.end for e in self.events)

    @property
    def event_ids(self) -> list[str]:
        return [e.id for e in self.events]

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "events": [e.to_dict() for e in self.events],
        }


@dataclass(frozen=True)
class PriorityResult:
    """Rule-based importance of one event."""

    score: int
    level: PriorityLevel
    reasons: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "level": self.level.value, "reasons": list(self.reasons)}


@dataclass(frozen=True)
class TimeSlotCandidate:
    """An open window satisfying every search constraint."""

    date: date
    start: datetime
    end: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }


@dataclass
class Pattern:
    """
    Mined summary of historical approval behaviour for one bucket.

    Patterns are recomputed on demand and never stored.
    """

    id: str
    description: str
    conditions: dict[str, Any]
    suggested_action: str
    approval_rate: float
    sample_count: int
    last_updated: str

    @property
    def summary(self) -> str:
        """One-line hint shown next to a matching proposal."""
        if self.suggested_action == "context_dependent":
            verb = "approved proposals"
        else:
            verb = f"approved '{self.suggested_action}'"
        return (
            f"You {verb} for {self.description} "
            f"{self.approval_rate:.0%} of the time ({self.sample_count} decisions)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "conditions": dict(self.conditions),
            "suggested_action": self.suggested_action,
            "approval_rate": self.approval_rate,
            "sample_count": self.sample_count,
            "last_updated": self.last_updated,
        }


@dataclass
class ResolutionProposal:
    """
    Proposed resolution for one conflict group.

    Created fresh on every run. `kind` is the explicit discriminant the
    executor and the decision log rely on.
    """

    conflict_id: str
    group: ConflictGroup
    priorities: dict[str, PriorityResult]
    action: ResolutionAction
    kind: DecisionAction
    targets: list[Event] = field(default_factory=list)
    description: str = ""
    reason: str = ""

    # AI refinement
    confidence: str | None = None
    alternatives: list[str] = field(default_factory=list)
    ai_analysis: bool = False
    ai_error: str | None = None
    ai_scores: dict[str, dict[str, Any]] = field(default_factory=dict)

    # Learning hint
    learned_pattern: Pattern | None = None

    def score_of(self, event: Event) -> int:
        result = self.priorities.get(event.id)
        return result.score if result else 0

    @property
    def ranked_events(self) -> list[Event]:
        """Group events ordered by descending score, start time breaking ties."""
        return sorted(self.group.events, key=lambda e: (-self.score_of(e), e.start, e.id))

    @property
    def highest_score(self) -> int:
        return max(self.score_of(e) for e in self.group.events)

    @property
    def lowest_score(self) -> int:
        return min(self.score_of(e) for e in self.group.events)

    @property
    def priority_diff(self) -> int:
        return self.highest_score - self.lowest_score

    @property
    def kept_events(self) -> list[Event]:
        """Events sharing the group's maximum score."""
        top = self.highest_score
        return [e for e in self.ranked_events if self.score_of(e) == top]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "conflict_id": self.conflict_id,
            "start_time": self.group.start_time.isoformat(),
            "end_time": self.group.end_time.isoformat(),
            "events": [
                {
                    "id": e.id,
                    "subject": e.subject,
                    "organizer": e.organizer,
                    "attendees_count": e.attendee_count,
                    "response_status": e.response_status.value,
                    "priority": self.priorities[e.id].to_dict() if e.id in self.priorities else None,
                    "ai_priority": self.ai_scores.get(e.id),
                }
                for e in self.ranked_events
            ],
            "action": self.action.value,
            "kind": self.kind.value,
            "target_ids": [e.id for e in self.targets],
            "description": self.description,
            "reason": self.reason,
            "confidence": self.confidence,
            "alternatives": list(self.alternatives),
            "ai_analysis": self.ai_analysis,
            "ai_error": self.ai_error,
            "learned_pattern": self.learned_pattern.summary if self.learned_pattern else None,
        }


# =============================================================================
# Decision log records
# =============================================================================


@dataclass
class ProposedAction:
    type: DecisionAction
    target_priority: int
    priority_diff: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "target_priority": self.target_priority,
            "priority_diff": self.priority_diff,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProposedAction":
        return cls(
            type=DecisionAction(data["type"]),
            target_priority=int(data.get("target_priority", 0)),
            priority_diff=int(data.get("priority_diff", 0)),
        )


@dataclass
class UserDecision:
    type: UserAction
    final_action: DecisionAction | None = None
    modified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "final_action": self.final_action.value if self.final_action else None,
            "modified": self.modified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserDecision":
        final = data.get("final_action")
        return cls(
            type=UserAction(data["type"]),
            final_action=DecisionAction(final) if final else None,
            modified=bool(data.get("modified", False)),
        )


@dataclass
class DecisionPatterns:
    """Features extracted for pattern mining. Contains no identifying text."""

    priority_diff: int
    priority_gap_bucket: str
    attendees_count: int
    is_recurring: bool
    time_of_day: str  # morning, afternoon, evening
    day_of_week: int  # 0=Monday, 6=Sunday

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority_diff": self.priority_diff,
            "priority_gap_bucket": self.priority_gap_bucket,
            "attendees_count": self.attendees_count,
            "is_recurring": self.is_recurring,
            "time_of_day": self.time_of_day,
            "day_of_week": self.day_of_week,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DecisionPatterns":
        return cls(
            priority_diff=int(data["priority_diff"]),
            priority_gap_bucket=data.get("priority_gap_bucket", ""),
            attendees_count=int(data.get("attendees_count", 0)),
            is_recurring=bool(data.get("is_recurring", False)),
            time_of_day=data.get("time_of_day", ""),
            day_of_week=int(data.get("day_of_week", 0)),
        )


@dataclass
class DecisionFeedback:
    was_successful: bool
    user_comment: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"was_successful": self.was_successful, "user_comment": self.user_comment}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DecisionFeedback":
        return cls(
            was_successful=bool(data["was_successful"]),
            user_comment=data.get("user_comment"),
        )


@dataclass
class Decision:
    """
    Durable record of one human decision.

    Append-only: attaching feedback writes a new copy with a higher
    revision. Readers resolve duplicates by id, last write wins.
    """

    id: str
    timestamp: str  # ISO 8601
    conflict_hash: str
    proposed_action: ProposedAction
    user_action: UserDecision
    patterns: DecisionPatterns | None = None
    feedback: DecisionFeedback | None = None
    revision: int = 1
    version: int = DECISION_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "version": self.version,
            "id": self.id,
            "revision": self.revision,
            "timestamp": self.timestamp,
            "conflict_hash": self.conflict_hash,
            "proposed_action": self.proposed_action.to_dict(),
            "user_action": self.user_action.to_dict(),
            "patterns": self.patterns.to_dict() if self.patterns else None,
            "feedback": self.feedback.to_dict() if self.feedback else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Decision":
        """
        Create from dict.

        Lines written before the version field existed load as version 0.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        patterns = data.get("patterns")
        feedback = data.get("feedback")
        return cls(
            id=str(data["id"]),
            timestamp=str(data["timestamp"]),
            conflict_hash=str(data["conflict_hash"]),
            proposed_action=ProposedAction.from_dict(data["proposed_action"]),
            user_action=UserDecision.from_dict(data["user_action"]),
            patterns=DecisionPatterns.from_dict(patterns) if patterns else None,
            feedback=DecisionFeedback.from_dict(feedback) if feedback else None,
            revision=int(data.get("revision", 1)),
            version=int(data.get("version", 0)),
        )

    @staticmethod
    def generate_id() -> str:
        """Generate a new decision ID."""
        return str(uuid.uuid4())
