"""
Tool: Conflict Filter
Purpose: Drop conflict groups the user has declared are never real conflicts

Ignore rules come from the `custom_rules.ignore_conflicts` section of the AI
instructions file. A rule applies when every one of its conditions holds;
a group is dropped when any rule applies.

Condition semantics:
    day_of_week     the group's start falls on this weekday
    time            the group's start falls in this hour ("HH:MM", minutes ignored)
    event1_pattern  some event subject contains this substring
    event2_pattern  some event subject contains this substring

Day and hour are evaluated in the configured operating time zone.
"""

import logging
from datetime import tzinfo
from zoneinfo import ZoneInfo

from calendar_agent.config_models import IgnoreCondition, IgnoreRule
from calendar_agent.models import ConflictGroup

logger = logging.getLogger(__name__)


class ConflictFilter:
    """Applies user-authored ignore rules to detected conflict groups."""

    def __init__(self, ignore_rules: list[IgnoreRule] | None = None, tz: tzinfo | None = None):
        self.ignore_rules = list(ignore_rules or [])
        self.tz = tz or ZoneInfo("UTC")

    def filter_conflicts(self, groups: list[ConflictGroup]) -> list[ConflictGroup]:
        """
        Remove groups matched by any ignore rule.

        Args:
            groups: Detected conflict groups

        Returns:
            Groups that still need a resolution, in their original order
        """
        if not self.ignore_rules:
            return list(groups)

        kept = []
        for group in groups:
            rule = self.matching_rule(group)
            if rule is not None:
                logger.info(
                    f"Ignoring conflict at {group.start_time.isoformat()}: "
                    f"{rule.description or 'custom ignore rule'}"
                )
                continue
            kept.append(group)
        return kept

    def matching_rule(self, group: ConflictGroup) -> IgnoreRule | None:
        """Return the first ignore rule whose conditions all hold, if any."""
        for rule in self.ignore_rules:
            if self.should_ignore(group, rule):
                return rule
        return None

    def should_ignore(self, group: ConflictGroup, rule: IgnoreRule) -> bool:
        # A rule without conditions would silence every conflict
        if not rule.conditions:
            return False
        return all(self.check_condition(group, condition) for condition in rule.conditions)

    def check_condition(self, group: ConflictGroup, condition: IgnoreCondition) -> bool:
        local_start = group.start_time.astimezone(self.tz)

        if condition.weekday is not None and local_start.weekday() != condition.weekday:
            return False

        if condition.hour is not None and local_start.hour != condition.hour:
            return False

        subjects = [event.subject or "" for event in group.events]
        for pattern in (condition.event1_pattern, condition.event2_pattern):
            if pattern and not any(pattern in subject for subject in subjects):
                return False

        return True
