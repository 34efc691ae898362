#!/usr/bin/env python3
"""
Calendar Agent Command Line Interface

Main entry point for the `calendar-agent` command.

Usage:
    calendar-agent stats                               # Decision statistics (last 30 days)
    calendar-agent patterns                            # Learned approval patterns
    calendar-agent feedback <decision-id> --success    # Attach outcome feedback
    calendar-agent feedback <decision-id> --failure --comment "moved twice"
    calendar-agent conflicts --events events.json      # Offline proposals for exported events
    calendar-agent rules                               # Validate rule files
    calendar-agent --version
"""

import argparse
import json
import sys

from calendar_agent import __version__
from calendar_agent.config_models import (
    AppConfig,
    load_ai_instructions,
    load_config,
    load_scheduling_rules,
)
from calendar_agent.learning.decision_memory import DecisionMemory
from calendar_agent.logging_config import setup_logging


def _load_memory(args) -> DecisionMemory:
    config: AppConfig = load_config(args.config)
    rules = load_scheduling_rules(args.rules).model
    return DecisionMemory(config.decisions_path, config, rules.learning)


def cmd_stats(args):
    """Show approval, modification and skip rates."""
    stats = _load_memory(args).get_statistics()

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2, ensure_ascii=False))
        return 0

    if stats.total_decisions == 0:
        print("No decisions recorded yet.")
        return 0

    print(f"Decisions (last 30 days): {stats.total_decisions}")
    print(f"  Approved: {stats.approval_rate:.0%}")
    print(f"  Modified: {stats.modification_rate:.0%}")
    print(f"  Skipped:  {stats.skip_rate:.0%}")
    if stats.top_patterns:
        print("\nTop patterns:")
        for pattern in stats.top_patterns:
            print(f"  - {pattern.summary}")
    return 0


def cmd_patterns(args):
    """List patterns strong enough to be suggested."""
    patterns = _load_memory(args).suggest_patterns()

    if args.json:
        print(json.dumps([p.to_dict() for p in patterns], indent=2, ensure_ascii=False))
        return 0

    if not patterns:
        print("Not enough history to suggest patterns yet.")
        return 0
    for pattern in patterns:
        print(f"- {pattern.summary}")
    return 0


def cmd_feedback(args):
    """Attach success/failure feedback to a recent decision."""
    amended = _load_memory(args).record_feedback(args.decision_id, args.success, args.comment)
    if amended is None:
        print(f"Decision not found in the recent log: {args.decision_id}", file=sys.stderr)
        return 1
    print(f"Feedback recorded for {amended.id} (revision {amended.revision})")
    return 0


def cmd_conflicts(args):
    """Detect conflicts in an exported event list and print rule-based proposals."""
    from calendar_agent.agent.engine import ConflictResolutionEngine
    from calendar_agent.calendar.conflicts import format_conflict_summary
    from calendar_agent.models import Event

    config = load_config(args.config)
    loaded_rules = load_scheduling_rules(args.rules)
    instructions = load_ai_instructions(args.instructions).model

    with open(args.events, encoding="utf-8") as f:
        raw_events = json.load(f)
    events = [Event.from_dict(item) for item in raw_events]

    engine = ConflictResolutionEngine(
        config=config,
        rules=loaded_rules.model,
        ignore_rules=instructions.custom_rules.ignore_conflicts,
        memory=DecisionMemory(config.decisions_path, config, loaded_rules.model.learning),
        ai_instructions=instructions,
    )
    proposals = engine.build_proposals(events)

    if args.json:
        print(json.dumps([p.to_dict() for p in proposals], indent=2, ensure_ascii=False))
        return 0

    if not proposals:
        print("No conflicts found.")
        return 0

    for proposal in proposals:
        local_start = proposal.group.start_time.astimezone(config.tz)
        local_end = proposal.group.end_time.astimezone(config.tz)
        print(f"[{proposal.conflict_id}] {local_start:%a %Y-%m-%d %H:%M} - {local_end:%H:%M}")
        print(format_conflict_summary(proposal.group))
        print(f"  → {proposal.description}")
        print(f"    {proposal.reason}")
        if proposal.learned_pattern:
            print(f"    {proposal.learned_pattern.summary}")
        print()
    return 0


def cmd_rules(args):
    """Show where rules were loaded from, validating them on the way."""
    rules = load_scheduling_rules(args.rules)
    instructions = load_ai_instructions(args.instructions)

    tiers = rules.model.priorities
    print(f"Scheduling rules: {rules.file_path}{' (default)' if rules.is_default else ''}")
    for level in ("critical", "high", "medium", "low"):
        print(f"  {level}: {len(getattr(tiers, level))} rule(s)")
    print(f"  priority-difference rules: {len(rules.model.rules.priority_difference)}")
    print(f"AI instructions: {instructions.file_path}{' (default)' if instructions.is_default else ''}")
    print(f"  ignore rules: {len(instructions.model.custom_rules.ignore_conflicts)}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="calendar-agent",
        description="Calendar Agent - conflict resolution with decision memory",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version and exit")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--rules", default=None, help="Path to scheduling rules YAML")
    parser.add_argument("--instructions", default=None, help="Path to AI instructions YAML")
    parser.add_argument("--log-level", default=None, help="Log level (default: WARNING)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    stats_parser = subparsers.add_parser("stats", help="Show decision statistics")
    stats_parser.add_argument("--json", action="store_true", help="Output JSON")
    stats_parser.set_defaults(func=cmd_stats)

    patterns_parser = subparsers.add_parser("patterns", help="Show learned approval patterns")
    patterns_parser.add_argument("--json", action="store_true", help="Output JSON")
    patterns_parser.set_defaults(func=cmd_patterns)

    feedback_parser = subparsers.add_parser("feedback", help="Record feedback on a decision")
    feedback_parser.add_argument("decision_id", help="Decision ID")
    outcome = feedback_parser.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--success", dest="success", action="store_true", help="The resolution worked")
    outcome.add_argument("--failure", dest="success", action="store_false", help="The resolution did not work")
    feedback_parser.add_argument("--comment", default=None, help="Free-text comment")
    feedback_parser.set_defaults(func=cmd_feedback)

    conflicts_parser = subparsers.add_parser("conflicts", help="Propose resolutions for exported events")
    conflicts_parser.add_argument("--events", required=True, help="JSON file with a list of events")
    conflicts_parser.add_argument("--json", action="store_true", help="Output JSON")
    conflicts_parser.set_defaults(func=cmd_conflicts)

    rules_parser = subparsers.add_parser("rules", help="Validate and summarize rule files")
    rules_parser.set_defaults(func=cmd_rules)

    args = parser.parse_args(argv)

    if args.version:
        print(f"calendar-agent version {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main() or 0)
