"""
AI prompt construction and structured-response validation for conflict analysis.

The reasoning service receives a system prompt built from the AI instructions
and scheduling rules, plus one user prompt per conflict group. It must answer
with JSON matching AI_ANALYSIS_SCHEMA; AIAnalysis validates that answer.

Usage:
    from calendar_agent.agent.ai_prompt import (
        AIAnalysis,
        generate_conflict_analysis_prompt,
        generate_system_prompt,
    )

    system_prompt = generate_system_prompt(instructions, rules, "Asia/Tokyo")
    prompt = generate_conflict_analysis_prompt(proposal, instructions)
    response = await reasoning.analyze_structured(system_prompt, prompt)
    analysis = AIAnalysis.model_validate(response["result"])
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from calendar_agent.config_models import AIInstructions, SchedulingRules
from calendar_agent.models import DecisionAction, ResolutionProposal

# =============================================================================
# Response schema
# =============================================================================

AI_ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "priorities": {
            "type": "array",
            "description": "One entry per event in the conflict",
            "items": {
                "type": "object",
                "properties": {
                    "event_id": {"type": "string"},
                    "score": {"type": "integer", "minimum": 0, "maximum": 100},
                    "reason": {"type": "string"},
                },
                "required": ["event_id", "score"],
            },
        },
        "recommendation": {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["reschedule", "decline", "keep"]},
                "target_event_id": {
                    "type": "string",
                    "description": "Event to move or decline; empty for keep",
                },
                "reason": {"type": "string"},
                "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
            },
            "required": ["action", "confidence"],
        },
        "alternatives": {
            "type": "array",
            "items": {"type": "string"},
        },
    },
    "required": ["recommendation"],
}


class AIPriority(BaseModel):
    model_config = ConfigDict(extra="allow")
    event_id: str
    score: int = Field(ge=0, le=100)
    reason: str = Field(default="")


class AIRecommendation(BaseModel):
    model_config = ConfigDict(extra="allow")
    action: DecisionAction
    target_event_id: Optional[str] = None
    reason: str = Field(default="")
    confidence: Literal["high", "medium", "low"] = "medium"


class AIAnalysis(BaseModel):
    """Validated structured answer from the reasoning service."""

    model_config = ConfigDict(extra="allow")
    priorities: list[AIPriority] = Field(default_factory=list)
    recommendation: AIRecommendation
    alternatives: list[str] = Field(default_factory=list)


# =============================================================================
# Prompts
# =============================================================================


def _ignore_rules_section(instructions: AIInstructions) -> str:
    rules = instructions.custom_rules.ignore_conflicts
    if not rules:
        return ""
    lines = [
        "## Never treat these as conflicts",
        "Combinations matching the following conditions are not conflicts; keep both events:",
    ]
    for rule in rules:
        conditions = [c.model_dump(exclude_none=True) for c in rule.conditions]
        lines.append(f"- {rule.description}")
        lines.append(f"  Conditions: {json.dumps(conditions, ensure_ascii=False)}")
        if rule.reason:
            lines.append(f"  Reason: {rule.reason}")
    return "\n".join(lines)


def _priority_tiers_section(rules: SchedulingRules) -> str:
    lines = []
    for level in ("critical", "high", "medium", "low"):
        tier_rules = getattr(rules.priorities, level)
        descriptions = [r.description or r.pattern or ", ".join(r.keywords) for r in tier_rules]
        described = "; ".join(d for d in descriptions if d) or "(no rules)"
        lines.append(f"- {level}: {described}")
    return "\n".join(lines)


def _difference_rules_section(rules: SchedulingRules) -> str:
    lines = []
    for rule in rules.rules.priority_difference:
        if rule.if_diff_greater_than is not None:
            condition = f"gap > {rule.if_diff_greater_than}"
        elif rule.if_diff_less_than is not None:
            condition = f"gap < {rule.if_diff_less_than}"
        else:
            condition = "always"
        lines.append(f"- if {condition}: {rule.then.value} ({rule.description})")
    return "\n".join(lines) or "- (none: every conflict needs a manual decision)"


def generate_system_prompt(instructions: AIInstructions, rules: SchedulingRules, timezone: str) -> str:
    """
    Build the system prompt for conflict analysis.

    Args:
        instructions: Loaded AI instructions
        rules: Loaded scheduling rules
        timezone: Operating time zone name

    Returns:
        System prompt text
    """
    style = instructions.communication_style
    output = instructions.output_settings
    considerations = "\n".join(f"- {c}" for c in instructions.reschedule_considerations)
    never_reschedule = "\n".join(
        f"- subjects matching /{r.pattern}/" for r in instructions.custom_rules.never_reschedule
    )

    sections = [
        f"# {instructions.role.name}",
        instructions.role.description,
        "## Settings",
        f"- Language: {style.language}\n- Tone: {style.tone}\n"
        f"- Emoji: {'yes' if style.use_emoji else 'no'}\n- Time zone: {timezone}",
        _ignore_rules_section(instructions),
        "## Conflict analysis",
        instructions.conflict_analysis.instructions,
        "## Priority tiers",
        _priority_tiers_section(rules),
        "## Priority-difference rules",
        _difference_rules_section(rules),
        "## Rescheduling considerations",
        considerations,
    ]
    if never_reschedule:
        sections += ["## Never reschedule", never_reschedule]
    sections += [
        "## Output",
        f"Offer at most {output.max_alternatives} alternatives. "
        "Answer with a single JSON object matching this schema:",
        json.dumps(AI_ANALYSIS_SCHEMA, indent=2),
    ]
    return "\n\n".join(s for s in sections if s)


def generate_conflict_analysis_prompt(proposal: ResolutionProposal, instructions: AIInstructions) -> str:
    """
    Build the per-conflict user prompt.

    Args:
        proposal: Rule-based proposal for the group
        instructions: Loaded AI instructions

    Returns:
        Prompt describing the group's time range, events and rule scores
    """
    group = proposal.group
    event_lines = []
    for event in group.events:
        priority = proposal.priorities.get(event.id)
        score = f"{priority.score} ({priority.level.value})" if priority else "unscored"
        event_lines.append(
            f"- [{event.id}] {event.subject} | organizer: {event.organizer or 'none'} | "
            f"attendees: {event.attendee_count} | "
            f"{event.start.isoformat()} - {event.end.isoformat()} | rule score: {score}"
        )

    return "\n\n".join(
        [
            "Analyze the following schedule conflict.",
            f"## Time range\n{group.start_time.isoformat()} - {group.end_time.isoformat()}",
            "## Events\n" + "\n".join(event_lines),
            f"## Rule-based proposal\n{proposal.action.value}: {proposal.description}",
            "## Request\n"
            "1. Score each event's importance\n"
            "2. Recommend one action and its target event id\n"
            f"3. List up to {instructions.output_settings.max_alternatives} alternatives",
        ]
    )
