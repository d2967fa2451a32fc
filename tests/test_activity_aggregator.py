import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from activity_aggregator import (
    ActivityAggregator,
    created_exercise_event,
    pr_event,
    session_event,
)
from errors import InvalidInput, TotalFailure
from models import CompletedSession, Exercise, PersonalRecord, Workout
from tools import DateTools


class FakeGateway:
    def __init__(self, prs=(), sessions=(), workouts=(), exercises=(), failing=()):
        self.data = {
            "prs": list(prs),
            "sessions": list(sessions),
            "workouts": list(workouts),
            "exercises": list(exercises),
        }
        self.failing = set(failing)
        self.calls = []

    async def _read(self, source, user_id, limit):
        self.calls.append((source, user_id, limit))
        if source in self.failing:
            raise RuntimeError(f"{source} down")
        return self.data[source][:limit]

    async def list_recent_prs(self, user_id, limit):
        return await self._read("prs", user_id, limit)

    async def list_recent_completed_sessions(self, user_id, limit):
        return await self._read("sessions", user_id, limit)

    async def list_recent_created_workouts(self, user_id, limit):
        return await self._read("workouts", user_id, limit)

    async def list_recent_created_exercises(self, user_id, limit):
        return await self._read("exercises", user_id, limit)


def fixture_gateway(**kwargs):
    prs = [
        PersonalRecord(id="pr1", value=100, unit="kg", date_achieved="2024-03-10", notes="Cinturón"),
        PersonalRecord(id="pr2", value=5, date_achieved="2024-03-01"),
        PersonalRecord(id="pr3", value=72.5, unit="kg"),
    ]
    sessions = [
        CompletedSession(id="s1", date_completed="2024-03-12", performance_score=87, notes="Rx"),
        CompletedSession(id="s2", date_completed="2024-02-20", notes="Escalado"),
    ]
    workouts = [
        Workout(id="w1", name="Fran", created_at="2024-03-11T08:00:00+00:00"),
    ]
    return FakeGateway(prs, sessions, workouts, [], **kwargs)


@pytest.mark.asyncio
async def test_fixture_feed_has_pinned_order():
    feed = await ActivityAggregator(fixture_gateway()).build_activity_feed("user-1")
    assert [(e.kind, e.detail) for e in feed.events] == [
        ("workout", "87 pts · Rx"),
        ("created_workout", "Fran"),
        ("pr", "100 kg (Cinturón)"),
        ("pr", "5 (Sin notas)"),
        ("workout", "Escalado"),
        ("pr", "72.5 kg (Sin notas)"),
    ]
    assert [e.title for e in feed.events] == [
        "WOD completado",
        "Entrenamiento creado",
        "Nuevo PR",
        "Nuevo PR",
        "WOD completado",
        "Nuevo PR",
    ]
    assert feed.warnings == []
    assert not feed.empty


@pytest.mark.asyncio
async def test_feed_is_sorted_and_truncated():
    gateway = fixture_gateway()
    feed = await ActivityAggregator(gateway).build_activity_feed("user-1", 3, 4)
    assert len(feed.events) == 4
    keys = [DateTools.sort_key(e.occurred_at) for e in feed.events]
    assert keys == sorted(keys, reverse=True)
    assert all(limit == 3 for _source, _user, limit in gateway.calls)
    assert {c[0] for c in gateway.calls} == {"prs", "sessions", "workouts", "exercises"}


@pytest.mark.asyncio
async def test_per_source_limit_is_applied():
    gateway = fixture_gateway()
    feed = await ActivityAggregator(gateway).build_activity_feed("user-1", 1, 10)
    assert [e.kind for e in feed.events] == ["workout", "created_workout", "pr"]


@pytest.mark.asyncio
async def test_one_failing_source_is_a_warning():
    gateway = fixture_gateway(failing={"sessions"})
    feed = await ActivityAggregator(gateway).build_activity_feed("user-1")
    assert {e.kind for e in feed.events} == {"pr", "created_workout"}
    assert len(feed.warnings) == 1
    assert "user_workouts" in feed.warnings[0]


@pytest.mark.asyncio
async def test_all_sources_failing_raises_total_failure():
    gateway = FakeGateway(failing={"prs", "sessions", "workouts", "exercises"})
    with pytest.raises(TotalFailure) as info:
        await ActivityAggregator(gateway).build_activity_feed("user-1")
    assert len(info.value.failures) == 4


@pytest.mark.asyncio
async def test_empty_sources_give_empty_feed():
    feed = await ActivityAggregator(FakeGateway()).build_activity_feed("user-1")
    assert feed.events == []
    assert feed.empty


@pytest.mark.asyncio
async def test_equal_timestamps_keep_source_order():
    gateway = FakeGateway(
        prs=[PersonalRecord(id="p", value=1, date_achieved="2024-01-01T00:00:00")],
        workouts=[Workout(id="w", name="A", created_at="2024-01-01")],
        exercises=[Exercise(id="e", name="B", created_at="2024-01-01T00:00:00Z")],
    )
    feed = await ActivityAggregator(gateway).build_activity_feed("user-1")
    assert [e.kind for e in feed.events] == ["pr", "created_workout", "created_exercise"]


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", [None, "", "   ", 42])
async def test_invalid_user_id(user_id):
    gateway = FakeGateway()
    with pytest.raises(InvalidInput):
        await ActivityAggregator(gateway).build_activity_feed(user_id)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_invalid_limits():
    aggregator = ActivityAggregator(FakeGateway())
    with pytest.raises(InvalidInput):
        await aggregator.build_activity_feed("user-1", 0, 6)
    with pytest.raises(InvalidInput):
        await aggregator.build_activity_feed("user-1", 3, -1)


def test_created_exercise_detail_truncates_description():
    long_desc = "x" * 60
    event = created_exercise_event(Exercise(id="e", name="Row", description=long_desc))
    assert event.detail == "Row - " + "x" * 50 + "..."
    exact = created_exercise_event(Exercise(id="e", name="Row", description="y" * 50))
    assert exact.detail == "Row - " + "y" * 50
    bare = created_exercise_event(Exercise(id="e", name="Row"))
    assert bare.detail == "Row"
    assert bare.title == "Ejercicio creado"


def test_pr_and_session_details():
    assert pr_event(PersonalRecord(id="p", value=140.5, unit="lb")).detail == "140.5 lb (Sin notas)"
    event = session_event(CompletedSession(id="s", date_completed="2024-01-01"))
    assert event.detail == ""
    assert event.occurred_at == "2024-01-01"
