"""
Tool: Decision Memory
Purpose: Remember how the user answered past conflict proposals and mine approval patterns

Every human decision is appended to a newline-delimited JSON log, one file
per calendar day (YYYY-MM-DD.jsonl). Nothing identifying is stored: the
conflict is reduced to a salted SHA-256 fingerprint of its time range,
event count and scores.

Log semantics:
    - Append-only. Attaching feedback writes a new copy of the decision
      with a higher `revision`; readers that care use last-write-wins by id
      (statistics and pattern mining both do)
    - Corrupt lines are skipped; a missing directory means no history
    - Files older than the retention window (default 90 days) are deleted
      after every write

Pattern mining (default 90-day window):
    - Priority gap buckets: large (50+), medium (25-50), small (under 25)
    - Time-of-day buckets: morning, afternoon, evening
    - A bucket needs at least 3 samples to produce a pattern
    - Only patterns with approval rate above the threshold (0.7) and at
      least `min_samples` (5) decisions are suggested

Usage:
    memory = DecisionMemory(config.decisions_path, config, rules.learning)
    decision = memory.create_decision_record(proposal, UserAction.APPROVE)
    memory.record_decision(decision)
    stats = memory.get_statistics()

Dependencies:
    - hashlib, json (stdlib)
"""

import hashlib
import json
import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any

from calendar_agent.config_models import AppConfig, LearningRulesConfig
from calendar_agent.models import (
    Decision,
    DecisionAction,
    DecisionFeedback,
    DecisionPatterns,
    Pattern,
    ProposedAction,
    ResolutionProposal,
    UserAction,
    UserDecision,
)

logger = logging.getLogger(__name__)


LOG_SUFFIX = ".jsonl"

MIN_BUCKET_SAMPLES = 3

# (bucket, lower bound inclusive, upper bound exclusive, description)
GAP_BUCKETS = [
    ("large", 50, None, "large priority gaps (50+)"),
    ("medium", 25, 50, "medium priority gaps (25-50)"),
    ("small", None, 25, "small priority gaps (under 25)"),
]

TIME_OF_DAY_BUCKETS = ["morning", "afternoon", "evening"]


def time_of_day_bucket(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"


def priority_gap_bucket(priority_diff: int) -> str:
    for name, low, high, _ in GAP_BUCKETS:
        if (low is None or priority_diff >= low) and (high is None or priority_diff < high):
            return name
    return "small"


@dataclass
class DecisionStatistics:
    """Aggregate view of recent decisions."""

    total_decisions: int = 0
    approval_rate: float = 0.0
    modification_rate: float = 0.0
    skip_rate: float = 0.0
    top_patterns: list[Pattern] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_decisions": self.total_decisions,
            "approval_rate": self.approval_rate,
            "modification_rate": self.modification_rate,
            "skip_rate": self.skip_rate,
            "top_patterns": [p.to_dict() for p in self.top_patterns],
        }


class DecisionMemory:
    """
    File-backed decision log with statistics and pattern mining.

    Safe for sequential use by a single process. Two processes writing the
    same directory at once are not supported.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        config: AppConfig | None = None,
        rules_learning: LearningRulesConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or AppConfig()
        self.base_dir = Path(base_dir) if base_dir else self.config.decisions_path
        self.learning = rules_learning or LearningRulesConfig()
        self.tz: tzinfo = self.config.tz
        self._clock = clock or (lambda: datetime.now(self.tz))

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    # =========================================================================
    # Writing
    # =========================================================================

    def record_decision(self, decision: Decision) -> Path:
        """
        Append a decision to today's log file, then run retention cleanup.

        Returns:
            Path of the file written
        """
        self.base_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.base_dir / f"{self.today().isoformat()}{LOG_SUFFIX}"

        with open(file_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(decision.to_dict(), ensure_ascii=False) + "\n")

        logger.debug(f"Recorded decision {decision.id} (revision {decision.revision})")
        self.cleanup_old_data()
        return file_path

    def fingerprint(self, proposal: ResolutionProposal) -> str:
        """Salted one-way hash of the conflict's shape."""
        group = proposal.group
        payload = json.dumps(
            {
                "time": [group.start_time.isoformat(), group.end_time.isoformat()],
                "event_count": len(group),
                "priorities": [proposal.score_of(e) for e in group.events],
            },
            sort_keys=True,
        )
        salt = self.config.learning.fingerprint_salt
        return hashlib.sha256((salt + payload).encode("utf-8")).hexdigest()

    def create_decision_record(
        self,
        proposal: ResolutionProposal,
        user_action: UserAction | str,
        final_action: DecisionAction | str | None = None,
    ) -> Decision:
        """
        Derive a Decision from a proposal and the user's answer.

        Pattern features describe the conflict itself: time of day and day of
        week are taken from the conflict's start in the configured zone.

        Args:
            proposal: The proposal the user answered
            user_action: approve, modify or skip
            final_action: What the user chose instead, when modifying

        Returns:
            A new Decision (not yet recorded)
        """
        user_action = UserAction(user_action)
        final = DecisionAction(final_action) if final_action else None
        priority_diff = proposal.priority_diff
        local_start = proposal.group.start_time.astimezone(self.tz)

        return Decision(
            id=Decision.generate_id(),
            timestamp=self.now().isoformat(),
            conflict_hash=self.fingerprint(proposal),
            proposed_action=ProposedAction(
                type=proposal.kind,
                target_priority=proposal.lowest_score,
                priority_diff=priority_diff,
            ),
            user_action=UserDecision(
                type=user_action,
                final_action=final,
                modified=user_action == UserAction.MODIFY,
            ),
            patterns=DecisionPatterns(
                priority_diff=priority_diff,
                priority_gap_bucket=priority_gap_bucket(priority_diff),
                attendees_count=sum(e.attendee_count for e in proposal.group.events),
                is_recurring=any(e.is_recurring for e in proposal.group.events),
                time_of_day=time_of_day_bucket(local_start.hour),
                day_of_week=local_start.weekday(),
            ),
        )

    def record_feedback(
        self,
        decision_id: str,
        was_successful: bool,
        user_comment: str | None = None,
    ) -> Decision | None:
        """
        Attach outcome feedback to a recent decision.

        Writes a new copy of the decision with `revision + 1`; the original
        line is left untouched.

        Returns:
            The amended Decision, or None if no decision with that id was
            found within the feedback lookback window
        """
        lookback = self.config.learning.feedback_lookback_days
        latest = {d.id: d for d in self.load_latest_decisions(lookback)}
        decision = latest.get(decision_id)
        if decision is None:
            logger.info(f"No decision {decision_id} in the last {lookback} days")
            return None

        amended = replace(
            decision,
            feedback=DecisionFeedback(was_successful=was_successful, user_comment=user_comment),
            revision=decision.revision + 1,
        )
        self.record_decision(amended)
        return amended

    def cleanup_old_data(self) -> list[Path]:
        """
        Delete log files dated before the retention cutoff.

        Returns:
            Paths that were removed
        """
        if not self.base_dir.is_dir():
            return []

        cutoff = self.today() - timedelta(days=self.config.data_retention.decisions_days)
        removed = []
        for file_path, file_date in self._log_files():
            if file_date < cutoff:
                file_path.unlink()
                removed.append(file_path)

        if removed:
            logger.info(f"Removed {len(removed)} decision log file(s) older than {cutoff.isoformat()}")
        return removed

    # =========================================================================
    # Reading
    # =========================================================================

    def _log_files(self) -> list[tuple[Path, date]]:
        files = []
        for file_path in sorted(self.base_dir.glob(f"*{LOG_SUFFIX}")):
            try:
                file_date = date.fromisoformat(file_path.stem)
            except ValueError:
                continue
            files.append((file_path, file_date))
        return files

    def _read_file(self, file_path: Path) -> list[Decision]:
        decisions = []
        with open(file_path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    decisions.append(Decision.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError) as e:
                    logger.debug(f"Skipping invalid line {file_path.name}:{line_number}: {e}")
        return decisions

    def load_recent_decisions(self, days: int) -> list[Decision]:
        """
        Load every record from log files dated within the last `days` days.

        Records are returned in file order, including superseded revisions.
        """
        if not self.base_dir.is_dir():
            return []

        cutoff = self.today() - timedelta(days=days)
        decisions: list[Decision] = []
        for file_path, file_date in self._log_files():
            if file_date < cutoff:
                continue
            decisions.extend(self._read_file(file_path))
        return decisions

    def load_latest_decisions(self, days: int) -> list[Decision]:
        """Like load_recent_decisions, keeping only the newest revision per id."""
        latest: dict[str, Decision] = {}
        for decision in self.load_recent_decisions(days):
            current = latest.get(decision.id)
            if current is None or decision.revision >= current.revision:
                latest[decision.id] = decision
        return list(latest.values())

    # =========================================================================
    # Statistics and patterns
    # =========================================================================

    def get_statistics(self) -> DecisionStatistics:
        """Approval, modification and skip rates over the statistics window."""
        decisions = self.load_latest_decisions(self.config.learning.stats_window_days)
        if not decisions:
            return DecisionStatistics()

        counts = Counter(d.user_action.type for d in decisions)
        total = len(decisions)
        return DecisionStatistics(
            total_decisions=total,
            approval_rate=counts[UserAction.APPROVE] / total,
            modification_rate=counts[UserAction.MODIFY] / total,
            skip_rate=counts[UserAction.SKIP] / total,
            top_patterns=self.suggest_patterns()[:3],
        )

    def suggest_patterns(self) -> list[Pattern]:
        """Patterns strong enough to show the user."""
        if not self.learning.enabled:
            return []

        decisions = self.load_latest_decisions(self.config.learning.pattern_window_days)
        if len(decisions) < self.learning.min_samples:
            return []

        return [
            p
            for p in self.analyze_patterns(decisions)
            if p.approval_rate > self.learning.approval_threshold and p.sample_count >= self.learning.min_samples
        ]

    def analyze_patterns(self, decisions: list[Decision]) -> list[Pattern]:
        """Mine priority-gap patterns followed by time-of-day patterns."""
        return self._gap_patterns(decisions) + self._time_of_day_patterns(decisions)

    def _gap_patterns(self, decisions: list[Decision]) -> list[Pattern]:
        patterns = []
        for name, low, high, description in GAP_BUCKETS:
            relevant = [
                d
                for d in decisions
                if d.patterns is not None and priority_gap_bucket(d.patterns.priority_diff) == name
            ]
            if len(relevant) < MIN_BUCKET_SAMPLES:
                continue

            approvals = [d for d in relevant if d.user_action.type == UserAction.APPROVE]
            if not approvals:
                continue
            action_counts = Counter(d.proposed_action.type.value for d in approvals)
            most_common = action_counts.most_common(1)[0][0]

            conditions: dict[str, Any] = {}
            if low is not None:
                conditions["min_priority_diff"] = low
            if high is not None:
                conditions["max_priority_diff"] = high

            patterns.append(
                Pattern(
                    id=f"priority_gap_{name}",
                    description=description,
                    conditions=conditions,
                    suggested_action=most_common,
                    approval_rate=len(approvals) / len(relevant),
                    sample_count=len(relevant),
                    last_updated=self.now().isoformat(),
                )
            )
        return patterns

    def _time_of_day_patterns(self, decisions: list[Decision]) -> list[Pattern]:
        patterns = []
        for bucket in TIME_OF_DAY_BUCKETS:
            relevant = [d for d in decisions if d.patterns is not None and d.patterns.time_of_day == bucket]
            if len(relevant) < MIN_BUCKET_SAMPLES:
                continue

            approvals = sum(1 for d in relevant if d.user_action.type == UserAction.APPROVE)
            approval_rate = approvals / len(relevant)
            if approval_rate <= self.learning.approval_threshold:
                continue

            patterns.append(
                Pattern(
                    id=f"time_of_day_{bucket}",
                    description=f"{bucket} meetings",
                    conditions={"time_of_day": bucket},
                    suggested_action="context_dependent",
                    approval_rate=approval_rate,
                    sample_count=len(relevant),
                    last_updated=self.now().isoformat(),
                )
            )
        return patterns

    def find_matching_pattern(
        self,
        priority_diff: int,
        time_of_day: str | None = None,
        patterns: list[Pattern] | None = None,
    ) -> Pattern | None:
        """
        Find the suggested pattern that applies to a conflict.

        Priority-gap patterns win over time-of-day patterns.

        Args:
            priority_diff: The conflict's priority gap
            time_of_day: morning, afternoon or evening
            patterns: Pre-computed suggestions; loaded from disk when omitted

        Returns:
            Matching Pattern or None
        """
        if patterns is None:
            patterns = self.suggest_patterns()

        gap_id = f"priority_gap_{priority_gap_bucket(priority_diff)}"
        for pattern in patterns:
            if pattern.id == gap_id:
                return pattern

        if time_of_day:
            for pattern in patterns:
                if pattern.conditions.get("time_of_day") == time_of_day:
                    return pattern
        return None
