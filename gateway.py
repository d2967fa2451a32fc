from typing import List

from db import (
    AsyncExerciseRepository,
    AsyncPRRepository,
    AsyncUserWorkoutRepository,
    AsyncWorkoutRepository,
)
from models import CompletedSession, Exercise, PersonalRecord, Workout, parse_rows


class DataGateway:
    """Typed, user-scoped async reads used by the aggregator and statistics."""

    def __init__(self, db_path: str = "wod.db") -> None:
        self.prs = AsyncPRRepository(db_path)
        self.sessions = AsyncUserWorkoutRepository(db_path)
        self.workouts = AsyncWorkoutRepository(db_path)
        self.exercises = AsyncExerciseRepository(db_path)

    async def list_recent_prs(self, user_id: str, limit: int) -> List[PersonalRecord]:
        rows = await self.prs.fetch_recent(user_id, limit)
        return parse_rows(PersonalRecord, rows)

    async def list_recent_completed_sessions(
        self, user_id: str, limit: int
    ) -> List[CompletedSession]:
        rows = await self.sessions.fetch_recent(user_id, limit)
        return parse_rows(CompletedSession, rows)

    async def list_recent_created_workouts(self, user_id: str, limit: int) -> List[Workout]:
        rows = await self.workouts.fetch_recent_created(user_id, limit)
        return parse_rows(Workout, rows)

    async def list_recent_created_exercises(self, user_id: str, limit: int) -> List[Exercise]:
        rows = await self.exercises.fetch_recent_created(user_id, limit)
        return parse_rows(Exercise, rows)

    async def list_workouts_for_user(self, user_id: str) -> List[Workout]:
        rows = await self.workouts.fetch_for_user(user_id)
        return parse_rows(Workout, rows)

    async def list_prs_for_user(self, user_id: str) -> List[PersonalRecord]:
        rows = await self.prs.fetch_for_user(user_id)
        return parse_rows(PersonalRecord, rows)
