"""
Integration tests for a full conflict resolution run.

Uses the shipped rule files, an in-memory calendar and a real decision log
under tmp_path:
    detect -> filter -> score -> propose -> resolve -> record -> learn
"""

import pytest

from calendar_agent.agent.engine import ApplyStatus, ConflictResolutionEngine
from calendar_agent.config_models import load_ai_instructions, load_scheduling_rules
from calendar_agent.learning.decision_memory import DecisionMemory
from calendar_agent.models import ResolutionAction, UserAction
from tests.conftest import ARGS_DIR, at


@pytest.fixture
def shipped_rules():
    return load_scheduling_rules(ARGS_DIR / "scheduling_rules.yaml").model


@pytest.fixture
def shipped_instructions():
    return load_ai_instructions(ARGS_DIR / "ai_instructions.yaml").model


@pytest.fixture
def week_events(make_event):
    return [
        # Monday: executive review over an optional lunch
        make_event("ceo", "CEO review", "2026-03-02 10:00", "2026-03-02 11:00"),
        make_event("lunch", "Team lunch", "2026-03-02 10:30", "2026-03-02 11:30"),
        # Tuesday: a sync against a design review
        make_event("sync", "Weekly sync", "2026-03-03 14:00", "2026-03-03 15:00"),
        make_event("design", "Design review", "2026-03-03 14:30", "2026-03-03 15:30"),
        # Friday: standup over the focus block, ignored by the shipped rules
        make_event("standup", "Standup", "2026-03-06 09:00", "2026-03-06 09:30"),
        make_event("block", "Focus Block", "2026-03-06 09:00", "2026-03-06 11:00"),
        # Declined items never conflict
        make_event("old", "Declined: CEO review", "2026-03-02 10:00", "2026-03-02 11:00"),
    ]


@pytest.fixture
def engine_factory(app_config, shipped_rules, shipped_instructions, clock, make_calendar, week_events):
    calendar = make_calendar(week_events)

    def _make():
        memory = DecisionMemory(app_config.decisions_path, app_config, shipped_rules.learning, clock=clock)
        return ConflictResolutionEngine(
            config=app_config,
            rules=shipped_rules,
            ignore_rules=shipped_instructions.custom_rules.ignore_conflicts,
            calendar=calendar,
            memory=memory,
            ai_instructions=shipped_instructions,
            user_address="me@example.com",
            clock=clock,
        )

    _make.calendar = calendar
    return _make


@pytest.mark.asyncio
async def test_week_is_analyzed_and_resolved(engine_factory):
    engine = engine_factory()

    proposals = await engine.analyze_window(at("2026-03-02 00:00"), at("2026-03-09 00:00"))

    assert [p.conflict_id for p in proposals] == ["conflict-1", "conflict-2"]
    monday, tuesday = proposals
    assert monday.action == ResolutionAction.RESCHEDULE_LOWER_PRIORITY
    assert [e.id for e in monday.targets] == ["lunch"]
    assert tuesday.action == ResolutionAction.SUGGEST_RESCHEDULE
    assert [e.id for e in tuesday.targets] == ["sync"]

    batch = await engine.resolve(proposals, {"conflict-1": UserAction.APPROVE, "conflict-2": UserAction.SKIP})

    assert batch.status == ApplyStatus.SUCCESS
    assert engine_factory.calendar.calls == [("update", "lunch", at("2026-03-02 09:00").isoformat())]
    assert len(batch.decisions) == 2

    stats = engine.memory.get_statistics()
    assert stats.total_decisions == 2
    assert stats.approval_rate == 0.5
    assert stats.skip_rate == 0.5

    amended = engine.memory.record_feedback(batch.decisions[0].id, True, "worked")
    assert amended.revision == 2
    assert engine.memory.get_statistics().total_decisions == 2


@pytest.mark.asyncio
async def test_repeated_approvals_become_a_learned_hint(engine_factory):
    for _ in range(5):
        engine = engine_factory()
        proposals = await engine.analyze_window(at("2026-03-02 00:00"), at("2026-03-09 00:00"))
        await engine.resolve(proposals, {"conflict-1": "approve", "conflict-2": "skip"})

    proposals = engine_factory().build_proposals(engine_factory.calendar.events)

    monday, tuesday = proposals
    assert monday.learned_pattern is not None
    assert monday.learned_pattern.id == "priority_gap_large"
    assert monday.learned_pattern.suggested_action == "reschedule"
    assert tuesday.learned_pattern is None


@pytest.mark.asyncio
async def test_dry_run_leaves_no_trace(engine_factory, app_config):
    engine = engine_factory()
    proposals = await engine.analyze_window(at("2026-03-02 00:00"), at("2026-03-09 00:00"))

    batch = await engine.resolve(proposals, dry_run=True)

    assert engine_factory.calendar.calls == []
    assert batch.decisions == []
    assert not app_config.decisions_path.exists()
