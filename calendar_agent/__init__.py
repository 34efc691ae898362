"""Calendar Agent — Conflict resolution for a single user's calendar

Philosophy:
    Overlapping meetings are a decision problem, not a data problem. The
    agent detects conflicts, scores each meeting against the user's own
    rules, proposes a resolution and only touches the calendar once the
    user has approved it. Every human decision is remembered so later
    runs can say "you usually approve this".

Components:
    models.py: Event, ConflictGroup, PriorityResult, ResolutionProposal, Decision
    config_models.py: Rule and application configuration (YAML + pydantic)
    calendar/: Conflict grouping, ignore-rule filtering, slot search, holidays
    policies/: Priority scoring and resolution action rules
    learning/: Append-only decision memory and pattern mining
    providers/: Calendar source and reasoning service contracts
    agent/: Orchestration and AI prompt construction
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"
DATA_DIR = Path.home() / ".calendar-agent"
DECISIONS_DIR = DATA_DIR / "decisions"

__version__ = "0.3.0"
