"""Learning Tools - Remember decisions, surface approval patterns

Philosophy:
    Learn from how conflicts were actually resolved, never from
    what they were about. Only fingerprints and coarse features are stored.

Components:
    decision_memory.py: Append-only decision log
        - One JSONL file per day under the decisions directory
        - Retention cleanup after every write
        - Approval / modification / skip statistics
        - Priority-gap and time-of-day pattern mining

Storage: ~/.calendar-agent/decisions/YYYY-MM-DD.jsonl
"""
