"""Action Resolver — Turn a priority spread into a resolution proposal

Priority-difference rules are evaluated in declaration order; the first rule
whose threshold matches selects the resolution class. With no rules, or no
matching rule, the result is always `manual_decision`.

Targets:
    Every event scoring below the group's maximum is a target, so a group of
    three can move two meetings at once. Events sharing the maximum score
    are all kept. When every event shares the maximum there is nothing to
    target and the proposal falls back to a manual decision.
"""

from dataclasses import dataclass

from calendar_agent.config_models import SchedulingRules
from calendar_agent.models import (
    ConflictGroup,
    DecisionAction,
    Event,
    PriorityResult,
    ResolutionAction,
    ResolutionProposal,
)


@dataclass(frozen=True)
class ActionDecision:
    """Result of evaluating priority-difference rules."""

    action: ResolutionAction
    description: str


def determine_conflict_action(priority_diff: float, rules: SchedulingRules) -> ActionDecision:
    """
    Pick a resolution class for a priority gap.

    Args:
        priority_diff: Highest minus lowest score in the group
        rules: Loaded scheduling rules

    Returns:
        ActionDecision for the first matching rule, else manual_decision
    """
    difference_rules = rules.rules.priority_difference
    if not difference_rules:
        return ActionDecision(ResolutionAction.MANUAL_DECISION, "No rules defined")

    for rule in difference_rules:
        if rule.matches(priority_diff):
            return ActionDecision(rule.then, rule.description)

    return ActionDecision(ResolutionAction.MANUAL_DECISION, "No matching rule")


def _subjects(events: list[Event]) -> str:
    return ", ".join(f"'{e.subject}'" for e in events)


def describe_resolution(
    action: ResolutionAction,
    kept: list[Event],
    targets: list[Event],
    priorities: dict[str, PriorityResult],
    ranked: list[Event],
) -> tuple[str, str]:
    """
    Build the human-readable description and reason for a proposal.

    Returns:
        (description, reason)
    """
    if action == ResolutionAction.MANUAL_DECISION or action == ResolutionAction.KEEP_BOTH or not targets:
        scores = " vs ".join(str(priorities[e.id].score) for e in ranked)
        if action == ResolutionAction.KEEP_BOTH:
            return "Keep all meetings", f"Priorities are close, keeping everything ({scores})"
        return "Manual decision required", f"A business judgement is needed ({scores})"

    top = priorities[kept[0].id]
    lowest = min(priorities[e.id].score for e in targets)
    gap = top.score - lowest

    if action == ResolutionAction.RESCHEDULE_LOWER_PRIORITY:
        description = f"Reschedule {_subjects(targets)} to another time"
        target_levels = ", ".join(f"{priorities[e.id].level.value}: {priorities[e.id].score}" for e in targets)
        reason = (
            f"{_subjects(kept)} has higher priority "
            f"({top.level.value}: {top.score} vs {target_levels})"
        )
    elif action == ResolutionAction.SUGGEST_RESCHEDULE:
        description = f"Consider rescheduling {_subjects(targets)}"
        reason = f"There is a priority gap of {gap} points"
    else:
        description = f"Decline {_subjects(targets)}"
        reason = f"{_subjects(kept)} outranks it by {gap} points"

    return description, reason


def build_proposal(
    conflict_id: str,
    group: ConflictGroup,
    priorities: dict[str, PriorityResult],
    rules: SchedulingRules,
) -> ResolutionProposal:
    """
    Create the rule-based proposal for one conflict group.

    Args:
        conflict_id: Identifier for this conflict within the run
        group: The conflict group
        priorities: PriorityResult per event id, covering every group event
        rules: Loaded scheduling rules

    Returns:
        ResolutionProposal with action, kind and targets filled in
    """
    proposal = ResolutionProposal(
        conflict_id=conflict_id,
        group=group,
        priorities=priorities,
        action=ResolutionAction.MANUAL_DECISION,
        kind=DecisionAction.KEEP,
    )

    decision = determine_conflict_action(proposal.priority_diff, rules)
    kept = proposal.kept_events
    targets = [e for e in proposal.ranked_events if e not in kept]

    action = decision.action
    if action.decision_action == DecisionAction.KEEP or not targets:
        if action.decision_action != DecisionAction.KEEP:
            action = ResolutionAction.MANUAL_DECISION
        targets = []

    description, reason = describe_resolution(action, kept, targets, priorities, proposal.ranked_events)
    if decision.description:
        reason = f"{reason}. {decision.description}"

    proposal.action = action
    proposal.kind = action.decision_action
    proposal.targets = targets
    proposal.description = description
    proposal.reason = reason
    return proposal
