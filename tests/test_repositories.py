import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    DailyWodRepository,
    ExerciseRepository,
    PRRepository,
    UserRepository,
    UserWorkoutRepository,
    WorkoutRepository,
)


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "wod.db")


def test_duplicate_email_rejected(db_file):
    users = UserRepository(db_file)
    uid = users.add("ana@example.com", "hash", "ana")
    with pytest.raises(ValueError):
        users.add("ana@example.com", "other")
    assert users.fetch_credentials("ana@example.com") == (uid, "hash")
    assert users.fetch_detail(uid).username == "ana"
    with pytest.raises(LookupError):
        users.fetch_detail("missing")


def test_workouts_are_user_scoped(db_file):
    workouts = WorkoutRepository(db_file)
    mine = workouts.create("u1", "Fran", date="2024-03-02")
    workouts.create("u2", "Grace")
    workouts.create(None, "Cindy")
    assert [w.name for w in workouts.fetch_for_user("u1")] == ["Fran"]
    assert [w.name for w in workouts.fetch_options("u1")] == ["Cindy", "Fran"]
    with pytest.raises(LookupError):
        workouts.update(mine, "u2", "Hijacked")
    with pytest.raises(LookupError):
        workouts.delete(mine, "u2")
    workouts.update(mine, "u1", "Fran modificado", duration_minutes=9)
    assert workouts.fetch_detail(mine).duration_minutes == 9
    workouts.delete(mine, "u1")
    assert workouts.fetch_for_user("u1") == []


def test_workout_validation(db_file):
    workouts = WorkoutRepository(db_file)
    with pytest.raises(ValueError):
        workouts.create("u1", "  ")
    with pytest.raises(ValueError):
        workouts.create("u1", "Fran", date="02/03/2024")
    with pytest.raises(ValueError):
        workouts.create("u1", "Fran", duration_minutes=-1)


def test_exercise_visibility(db_file):
    exercises = ExerciseRepository(db_file)
    pull = exercises.add_global("Pull-up", "gimnástico")
    own = exercises.add("u1", "Row")
    other = exercises.add("u2", "Snatch")
    assert [e.name for e in exercises.fetch_visible("u1")] == ["Pull-up", "Row"]
    assert exercises.is_visible(pull, "u2")
    assert not exercises.is_visible(own, "u2")
    with pytest.raises(LookupError):
        exercises.remove(pull, "u1")
    with pytest.raises(LookupError):
        exercises.update(other, "u1", "Mine now")


def test_pr_rejects_foreign_exercise(db_file):
    exercises = ExerciseRepository(db_file)
    other = exercises.add("u2", "Snatch")
    prs = PRRepository(db_file, exercises)
    with pytest.raises(LookupError):
        prs.add("u1", other, 80, "kg")
    with pytest.raises(ValueError):
        prs.add("u1", None, 80, "kg", "yesterday")


def test_pr_exercise_set_null_on_delete(db_file):
    exercises = ExerciseRepository(db_file)
    eid = exercises.add("u1", "Row")
    prs = PRRepository(db_file, exercises)
    prs.add("u1", eid, 7, "min", "2024-01-01")
    exercises.remove(eid, "u1")
    pr = prs.fetch_for_user("u1")[0]
    assert pr.exercise_id is None
    assert pr.exercise_name is None


def test_sessions_require_visible_workout(db_file):
    workouts = WorkoutRepository(db_file)
    foreign = workouts.create("u2", "Secret")
    sessions = UserWorkoutRepository(db_file, workouts)
    with pytest.raises(LookupError):
        sessions.add("u1", foreign, "2024-03-01")
    sid = sessions.add("u1", None, "2024-03-01", 87, "Rx")
    assert [s.id for s in sessions.fetch_for_user("u1")] == [sid]


def test_daily_wod_validation(db_file):
    wods = DailyWodRepository(db_file)
    with pytest.raises(ValueError):
        wods.add("u1", "2024-03-01", "Fastest", "7:45")
    with pytest.raises(ValueError):
        wods.add("u1", "2024-03-01", "For Time", "  ")
    with pytest.raises(ValueError):
        wods.add("u1", "", "For Time", "7:45")
    wods.add("u1", "2024-03-01", "AMRAP", " 12+3 ")
    logged = wods.fetch_for_user("u1")
    assert logged[0].score == "12+3"
    assert logged[0].result_type == "AMRAP"
