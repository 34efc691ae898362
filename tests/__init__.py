"""Calendar Agent Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - calendar/: Conflict grouping, ignore rules, slot search
  - policies/: Priority scoring and action resolution
  - learning/: Decision memory and pattern mining
  - agent/: Engine orchestration and AI prompts
- integration/: Full detect -> resolve -> learn runs

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/calendar/
"""
