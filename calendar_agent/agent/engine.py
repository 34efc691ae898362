"""
Conflict Resolution Engine — Wire detection, scoring, AI refinement and execution together

One engine is built per process from explicitly loaded configuration and
injected collaborators:

    engine = ConflictResolutionEngine(
        config=load_config(),
        rules=load_scheduling_rules().model,
        ignore_rules=load_ignore_rules(),
        calendar=my_calendar_source,
        reasoning=my_reasoning_service,      # optional
        memory=DecisionMemory(config.decisions_path, config, rules.learning),
    )
    proposals = await engine.analyze(events)
    batch = await engine.resolve(proposals, {"conflict-1": UserAction.APPROVE})

Failure model:
    - The reasoning service is optional and feature-detected once. Any AI
      failure keeps the rule-based proposal and records `ai_error`
    - Calendar mutations are applied per event. One failed event never
      aborts the batch; results report success / partial / failed
    - A decline that fails with "response not requested" falls back to a
      silent response update
"""

import dataclasses
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from calendar_agent.agent.ai_prompt import (
    AIAnalysis,
    generate_conflict_analysis_prompt,
    generate_system_prompt,
)
from calendar_agent.calendar.availability import SearchStatus, find_available_slots
from calendar_agent.calendar.conflict_filter import ConflictFilter
from calendar_agent.calendar.conflicts import detect_conflicts
from calendar_agent.config_models import AIInstructions, AppConfig, IgnoreRule, SchedulingRules
from calendar_agent.learning.decision_memory import DecisionMemory, time_of_day_bucket
from calendar_agent.logging_config import get_logger, run_context
from calendar_agent.models import (
    ConflictGroup,
    Decision,
    DecisionAction,
    Event,
    ResolutionAction,
    ResolutionProposal,
    UserAction,
)
from calendar_agent.policies.priority import score_events
from calendar_agent.policies.resolver import build_proposal, describe_resolution
from calendar_agent.providers.base import CalendarSource, ReasoningService, ResponseNotRequestedError

logger = get_logger(__name__)


AI_ACTIONS = {
    DecisionAction.RESCHEDULE: ResolutionAction.RESCHEDULE_LOWER_PRIORITY,
    DecisionAction.DECLINE: ResolutionAction.DECLINE_LOWER_PRIORITY,
    DecisionAction.KEEP: ResolutionAction.KEEP_BOTH,
}


# =============================================================================
# Results
# =============================================================================


class ApplyStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class EventActionResult:
    """Outcome of one calendar mutation."""

    event_id: str
    subject: str
    action: DecisionAction
    success: bool
    detail: str = ""
    error: str | None = None
    new_start: datetime | None = None
    new_end: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "subject": self.subject,
            "action": self.action.value,
            "success": self.success,
            "detail": self.detail,
            "error": self.error,
            "new_start": self.new_start.isoformat() if self.new_start else None,
            "new_end": self.new_end.isoformat() if self.new_end else None,
        }


def aggregate_status(results: list[EventActionResult]) -> ApplyStatus:
    if not results:
        return ApplyStatus.SKIPPED
    succeeded = sum(1 for r in results if r.success)
    if succeeded == len(results):
        return ApplyStatus.SUCCESS
    if succeeded == 0:
        return ApplyStatus.FAILED
    return ApplyStatus.PARTIAL


@dataclass
class ApplyResult:
    """Outcome of applying one proposal."""

    conflict_id: str
    status: ApplyStatus
    results: list[EventActionResult] = field(default_factory=list)
    dry_run: bool = False
    message: str = ""

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conflict_id": self.conflict_id,
            "status": self.status.value,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "message": self.message,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class BatchResult:
    """Outcome of resolving every proposal in a run."""

    results: list[ApplyResult] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)

    def count(self, status: ApplyStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def status(self) -> ApplyStatus:
        applied = [r for r in self.results if r.status != ApplyStatus.SKIPPED]
        if not applied:
            return ApplyStatus.SKIPPED
        if all(r.status == ApplyStatus.SUCCESS for r in applied):
            return ApplyStatus.SUCCESS
        if all(r.status == ApplyStatus.FAILED for r in applied):
            return ApplyStatus.FAILED
        return ApplyStatus.PARTIAL

    @property
    def success(self) -> bool:
        return self.status in (ApplyStatus.SUCCESS, ApplyStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "counts": {s.value: self.count(s) for s in ApplyStatus},
            "results": [r.to_dict() for r in self.results],
            "decision_ids": [d.id for d in self.decisions],
        }


@dataclass(frozen=True)
class UserChoice:
    """The user's answer to one proposal."""

    action: UserAction
    final_action: DecisionAction | None = None

    @classmethod
    def coerce(cls, value: "UserChoice | UserAction | str") -> "UserChoice":
        if isinstance(value, UserChoice):
            return value
        return cls(action=UserAction(value))


# =============================================================================
# Engine
# =============================================================================


class ConflictResolutionEngine:
    """Per-run orchestration of the conflict resolution pipeline."""

    def __init__(
        self,
        config: AppConfig,
        rules: SchedulingRules,
        ignore_rules: list[IgnoreRule] | None = None,
        calendar: CalendarSource | None = None,
        reasoning: ReasoningService | None = None,
        memory: DecisionMemory | None = None,
        ai_instructions: AIInstructions | None = None,
        user_address: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.rules = rules
        self.calendar = calendar
        self.reasoning = reasoning
        self.memory = memory
        self.ai_instructions = ai_instructions or AIInstructions()
        self.user_address = user_address
        self._clock = clock or (lambda: datetime.now(config.tz))
        self.conflict_filter = ConflictFilter(ignore_rules, config.tz)

        self.ai_enabled = False
        if reasoning is not None:
            try:
                self.ai_enabled = bool(reasoning.is_available())
            except Exception as e:
                logger.warning("ai_availability_check_failed", error=str(e))
        self._system_prompt: str | None = None

    # =========================================================================
    # Detection and proposals
    # =========================================================================

    def detect_conflicts(self, events: list[Event]) -> list[ConflictGroup]:
        """Group overlapping events, then drop groups matched by ignore rules."""
        groups = detect_conflicts(events)
        kept = self.conflict_filter.filter_conflicts(groups)
        logger.debug("conflicts_detected", total=len(groups), ignored=len(groups) - len(kept))
        return kept

    def build_proposals(self, events: list[Event]) -> list[ResolutionProposal]:
        """Rule-based proposals, one per remaining conflict group."""
        groups = self.detect_conflicts(events)
        patterns = self.memory.suggest_patterns() if self.memory and groups else []

        proposals = []
        for index, group in enumerate(groups, start=1):
            priorities = score_events(group.events, self.rules)
            proposal = build_proposal(f"conflict-{index}", group, priorities, self.rules)
            if self.memory and patterns:
                local_start = group.start_time.astimezone(self.config.tz)
                proposal.learned_pattern = self.memory.find_matching_pattern(
                    proposal.priority_diff,
                    time_of_day_bucket(local_start.hour),
                    patterns,
                )
            proposals.append(proposal)
        return proposals

    async def analyze(self, events: list[Event]) -> list[ResolutionProposal]:
        """Build proposals and refine each with the reasoning service when available."""
        proposals = self.build_proposals(events)
        if not self.ai_enabled:
            return proposals
        for proposal in proposals:
            await self._refine_with_ai(proposal)
        return proposals

    async def analyze_window(self, window_start: datetime, window_end: datetime) -> list[ResolutionProposal]:
        """Fetch the user's events for a window and analyze them."""
        if self.calendar is None:
            raise ValueError("No calendar source configured")
        events = await self.calendar.list_events(window_start, window_end)
        return await self.analyze(events)

    def _get_system_prompt(self) -> str:
        if self._system_prompt is None:
            self._system_prompt = generate_system_prompt(self.ai_instructions, self.rules, self.config.timezone)
        return self._system_prompt

    async def _refine_with_ai(self, proposal: ResolutionProposal) -> None:
        prompt = generate_conflict_analysis_prompt(proposal, self.ai_instructions)
        try:
            response = await self.reasoning.analyze_structured(self._get_system_prompt(), prompt)
        except Exception as e:
            self._ai_fallback(proposal, f"AI request failed: {e}")
            return

        if not response or not response.get("success"):
            error = (response or {}).get("error") or "AI returned no result"
            self._ai_fallback(proposal, error)
            return

        try:
            analysis = AIAnalysis.model_validate(response.get("result") or {})
        except ValidationError as e:
            self._ai_fallback(proposal, f"Malformed AI response: {e.error_count()} validation error(s)")
            return

        error = self.apply_ai_analysis(proposal, analysis)
        if error:
            self._ai_fallback(proposal, error)

    def _ai_fallback(self, proposal: ResolutionProposal, error: str) -> None:
        proposal.ai_error = error
        logger.warning("ai_analysis_fallback", conflict_id=proposal.conflict_id, error=error)

    def _never_reschedule(self, event: Event) -> bool:
        return any(
            re.search(rule.pattern, event.subject or "", re.IGNORECASE)
            for rule in self.ai_instructions.custom_rules.never_reschedule
        )

    def apply_ai_analysis(self, proposal: ResolutionProposal, analysis: AIAnalysis) -> str | None:
        """
        Merge a validated AI analysis into a proposal.

        Returns:
            An error message when the recommendation cannot be used (the
            rule-based action is then left in place), else None
        """
        events_by_id = {e.id: e for e in proposal.group.events}
        max_alternatives = self.ai_instructions.output_settings.max_alternatives

        proposal.ai_scores = {
            p.event_id: {"score": p.score, "reason": p.reason}
            for p in analysis.priorities
            if p.event_id in events_by_id
        }
        proposal.alternatives = list(analysis.alternatives[:max_alternatives])
        proposal.confidence = analysis.recommendation.confidence

        recommendation = analysis.recommendation
        action = AI_ACTIONS[recommendation.action]
        if recommendation.action == DecisionAction.KEEP:
            targets: list[Event] = []
        else:
            target = events_by_id.get(recommendation.target_event_id or "")
            if target is None:
                return f"AI recommended an unknown target: {recommendation.target_event_id!r}"
            if recommendation.action == DecisionAction.RESCHEDULE and self._never_reschedule(target):
                return f"AI recommended moving '{target.subject}', which is never rescheduled"
            targets = [target]

        kept = [e for e in proposal.ranked_events if e not in targets]
        description, reason = describe_resolution(
            action, kept, targets, proposal.priorities, proposal.ranked_events
        )
        proposal.action = action
        proposal.kind = action.decision_action
        proposal.targets = targets
        proposal.description = description
        proposal.reason = recommendation.reason or reason
        proposal.ai_analysis = True
        return None

    # =========================================================================
    # Execution
    # =========================================================================

    def _attendees_for(self, event: Event) -> list[str]:
        attendees = list(event.attendees)
        if self.user_address and self.user_address not in attendees:
            attendees.append(self.user_address)
        return attendees

    @staticmethod
    def _mutation_error(response: Any) -> str | None:
        if isinstance(response, dict) and not response.get("success", True):
            return response.get("error") or "Calendar rejected the change"
        return None

    async def _reschedule(self, event: Event, dry_run: bool) -> EventActionResult:
        result = EventActionResult(event.id, event.subject, DecisionAction.RESCHEDULE, success=False)
        search = await find_available_slots(
            self.calendar, event, self._attendees_for(event), self.config, now=self._clock()
        )
        if search.status == SearchStatus.FETCH_FAILED:
            result.error = search.error
            return result
        if search.status == SearchStatus.EXHAUSTED:
            result.error = f"No available slot in the next {self.config.search.days} days"
            return result

        slot = search.best
        result.new_start, result.new_end = slot.start, slot.end
        if dry_run:
            result.success = True
            result.detail = f"Would move to {slot.start.isoformat()}"
            return result

        error = self._mutation_error(await self.calendar.update_event(event.id, slot.start, slot.end))
        result.success = error is None
        result.error = error
        result.detail = f"Moved to {slot.start.isoformat()}" if error is None else ""
        return result

    async def _decline(self, event: Event, dry_run: bool) -> EventActionResult:
        result = EventActionResult(event.id, event.subject, DecisionAction.DECLINE, success=False)
        messages = self.rules.messages

        if event.is_organizer:
            if dry_run:
                result.success, result.detail = True, "Would cancel (you are the organizer)"
                return result
            error = self._mutation_error(await self.calendar.cancel_event(event.id, messages.cancel.default))
            result.detail = "Cancelled"
        else:
            if dry_run:
                result.success, result.detail = True, "Would decline"
                return result
            try:
                error = self._mutation_error(await self.calendar.decline_event(event.id, messages.decline.default))
                result.detail = "Declined"
            except ResponseNotRequestedError:
                error = self._mutation_error(await self.calendar.update_response(event.id, "declined"))
                result.detail = "Declined without notification (response not requested)"

        result.success = error is None
        result.error = error
        if error:
            result.detail = ""
        return result

    async def apply_proposal(self, proposal: ResolutionProposal, dry_run: bool = False) -> ApplyResult:
        """
        Execute a proposal against the calendar, one target at a time.

        Args:
            proposal: Proposal to execute
            dry_run: Search slots and report, but change nothing

        Returns:
            ApplyResult; keep/manual proposals are SKIPPED
        """
        if proposal.kind == DecisionAction.KEEP or not proposal.targets:
            return ApplyResult(
                proposal.conflict_id, ApplyStatus.SKIPPED, dry_run=dry_run, message="Nothing to change"
            )
        if self.calendar is None:
            return ApplyResult(
                proposal.conflict_id, ApplyStatus.FAILED, dry_run=dry_run, message="No calendar source configured"
            )

        results = []
        for event in proposal.targets:
            try:
                if proposal.kind == DecisionAction.RESCHEDULE:
                    outcome = await self._reschedule(event, dry_run)
                else:
                    outcome = await self._decline(event, dry_run)
            except Exception as e:
                outcome = EventActionResult(event.id, event.subject, proposal.kind, success=False, error=str(e))

            if not outcome.success:
                logger.warning(
                    "calendar_action_failed",
                    conflict_id=proposal.conflict_id,
                    event_id=event.id,
                    subject=event.subject,
                    action=proposal.kind.value,
                    error=outcome.error,
                )
            results.append(outcome)

        status = aggregate_status(results)
        succeeded = sum(1 for r in results if r.success)
        return ApplyResult(
            proposal.conflict_id,
            status,
            results=results,
            dry_run=dry_run,
            message=f"{succeeded}/{len(results)} event(s) updated",
        )

    def modified_proposal(self, proposal: ResolutionProposal, final_action: DecisionAction) -> ResolutionProposal:
        """Copy of a proposal carrying the user's chosen action instead."""
        action = AI_ACTIONS[final_action]
        targets = proposal.targets
        if final_action != DecisionAction.KEEP and not targets:
            kept = proposal.kept_events
            targets = [e for e in proposal.ranked_events if e not in kept]
        if final_action == DecisionAction.KEEP:
            targets = []
        return dataclasses.replace(proposal, action=action, kind=final_action, targets=list(targets))

    def _record(self, proposal: ResolutionProposal, choice: UserChoice) -> Decision | None:
        if self.memory is None:
            return None
        decision = self.memory.create_decision_record(proposal, choice.action, choice.final_action)
        try:
            self.memory.record_decision(decision)
        except OSError as e:
            logger.warning("decision_record_failed", conflict_id=proposal.conflict_id, error=str(e))
            return None
        return decision

    async def resolve(
        self,
        proposals: list[ResolutionProposal],
        user_actions: dict[str, UserChoice | UserAction | str] | None = None,
        dry_run: bool = False,
    ) -> BatchResult:
        """
        Record the user's answers and apply approved or modified proposals.

        Args:
            proposals: Proposals from analyze()/build_proposals()
            user_actions: Answer per conflict_id; proposals without one are
                skipped. None approves every proposal
            dry_run: Apply nothing and record nothing

        Returns:
            BatchResult with one ApplyResult per proposal
        """
        batch = BatchResult()
        with run_context(dry_run=dry_run):
            await self._resolve_all(batch, proposals, user_actions, dry_run)
        return batch

    async def _resolve_all(
        self,
        batch: BatchResult,
        proposals: list[ResolutionProposal],
        user_actions: dict[str, UserChoice | UserAction | str] | None,
        dry_run: bool,
    ) -> None:
        for proposal in proposals:
            if user_actions is None:
                choice = UserChoice(UserAction.APPROVE)
            elif proposal.conflict_id in user_actions:
                choice = UserChoice.coerce(user_actions[proposal.conflict_id])
            else:
                choice = UserChoice(UserAction.SKIP)

            if not dry_run:
                decision = self._record(proposal, choice)
                if decision:
                    batch.decisions.append(decision)

            if choice.action == UserAction.SKIP:
                batch.results.append(
                    ApplyResult(proposal.conflict_id, ApplyStatus.SKIPPED, dry_run=dry_run, message="Skipped by user")
                )
                continue

            to_apply = proposal
            if choice.action == UserAction.MODIFY and choice.final_action is not None:
                to_apply = self.modified_proposal(proposal, choice.final_action)

            batch.results.append(await self.apply_proposal(to_apply, dry_run=dry_run))

        logger.info(
            "conflicts_resolved",
            status=batch.status.value,
            applied=batch.count(ApplyStatus.SUCCESS),
            partial=batch.count(ApplyStatus.PARTIAL),
            failed=batch.count(ApplyStatus.FAILED),
            skipped=batch.count(ApplyStatus.SKIPPED),
        )
