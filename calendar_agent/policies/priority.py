"""Priority Scorer — Match events against tiered priority rules

Given an event and a SchedulingRules object, finds the first tier
(critical > high > medium > low) with a matching rule and returns that
tier's fixed score.

Rule Semantics:
    A rule matches when every sub-condition it declares passes:
        - pattern: regex that must match the subject (case-insensitive)
        - exclude_pattern: regex that must NOT match the subject
        - keywords: at least one keyword is a substring of the subject
        - attendees_count: min/max bounds on the attendee count
        - organizer_patterns: at least one is a substring of the organizer
    A tier matches when any of its rules matches.

Scoring is a pure function of (subject, attendee count, organizer) and the
rules. Events matching nothing get score 50, level "medium".
"""

import re

from calendar_agent.config_models import PriorityRule, SchedulingRules
from calendar_agent.models import Event, PriorityLevel, PriorityResult


TIER_ORDER = [
    PriorityLevel.CRITICAL,
    PriorityLevel.HIGH,
    PriorityLevel.MEDIUM,
    PriorityLevel.LOW,
]

TIER_DESCRIPTIONS = {
    PriorityLevel.CRITICAL: "Critical priority match",
    PriorityLevel.HIGH: "High priority match",
    PriorityLevel.MEDIUM: "Medium priority match",
    PriorityLevel.LOW: "Low priority match",
}

DEFAULT_PRIORITY = PriorityResult(
    score=PriorityLevel.MEDIUM.score,
    level=PriorityLevel.MEDIUM,
    reasons=("Default priority",),
)


def check_pattern_match(subject: str, rule: PriorityRule) -> bool:
    if rule.pattern and not re.search(rule.pattern, subject, re.IGNORECASE):
        return False
    if rule.exclude_pattern and re.search(rule.exclude_pattern, subject, re.IGNORECASE):
        return False
    return True


def check_keyword_match(subject: str, rule: PriorityRule) -> bool:
    if not rule.keywords:
        return True
    subject_lower = subject.lower()
    return any(keyword.lower() in subject_lower for keyword in rule.keywords)


def check_attendees_count(attendees_count: int, rule: PriorityRule) -> bool:
    bounds = rule.attendees_count
    if bounds is None:
        return True
    if bounds.min is not None and attendees_count < bounds.min:
        return False
    if bounds.max is not None and attendees_count > bounds.max:
        return False
    return True


def check_organizer_pattern(organizer: str, rule: PriorityRule) -> bool:
    if not rule.organizer_patterns:
        return True
    organizer_lower = organizer.lower()
    return any(pattern.lower() in organizer_lower for pattern in rule.organizer_patterns)


def matches_rule(subject: str, attendees_count: int, organizer: str, rule: PriorityRule) -> bool:
    """
    Check whether every condition a rule declares holds.

    Args:
        subject: Event subject
        attendees_count: Number of attendees
        organizer: Organizer address
        rule: The rule to evaluate

    Returns:
        True if the rule matches
    """
    return (
        check_pattern_match(subject, rule)
        and check_keyword_match(subject, rule)
        and check_attendees_count(attendees_count, rule)
        and check_organizer_pattern(organizer, rule)
    )


def calculate_event_priority(event: Event, rules: SchedulingRules) -> PriorityResult:
    """
    Score one event.

    Args:
        event: The event to score
        rules: Loaded scheduling rules

    Returns:
        PriorityResult for the first matching tier, or the default
    """
    subject = event.subject or ""
    organizer = event.organizer or ""

    for level in TIER_ORDER:
        for rule in rules.priorities.for_level(level):
            if matches_rule(subject, event.attendee_count, organizer, rule):
                return PriorityResult(
                    score=level.score,
                    level=level,
                    reasons=(rule.description or TIER_DESCRIPTIONS[level],),
                )

    return DEFAULT_PRIORITY


def score_events(events, rules: SchedulingRules) -> dict[str, PriorityResult]:
    """Score several events, keyed by event id."""
    return {event.id: calculate_event_priority(event, rules) for event in events}
