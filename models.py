"""Typed records exchanged between the repositories, services and API."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

RESULT_TYPES = ("For Time", "AMRAP", "Weight", "Rounds+Reps", "Distance", "Reps")


class Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class PersonalRecord(Record):
    user_id: Optional[str] = None
    exercise_id: Optional[str] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    date_achieved: Optional[str] = None
    notes: Optional[str] = None
    exercise_name: Optional[str] = None
    exercise_type: Optional[str] = None


class Workout(Record):
    user_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    date: Optional[str] = None
    duration_minutes: Optional[int] = None
    created_at: Optional[str] = None


class CompletedSession(Record):
    user_id: Optional[str] = None
    workout_id: Optional[str] = None
    date_completed: Optional[str] = None
    performance_score: Optional[float] = None
    notes: Optional[str] = None


class Exercise(Record):
    user_id: Optional[str] = None
    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[str] = None


class DailyWod(Record):
    user_id: str
    date: str
    workout_id: Optional[str] = None
    result_type: str
    score: str
    notes: Optional[str] = None
    created_at: Optional[str] = None


class User(Record):
    email: str
    username: Optional[str] = None
    role: Optional[str] = "user"
    created_at: Optional[str] = None


class RegisterRequest(BaseModel):
    email: str
    password: str
    username: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ActivityEvent(BaseModel):
    kind: str
    title: str
    detail: str
    occurred_at: Optional[str] = None


class MonthlyProgress(BaseModel):
    sessions_this_month: int = 0
    sessions_last_month: int = 0
    progress_percent: int = 0
    average_duration_minutes: int = 0


class PRSummary(BaseModel):
    total_count: int = 0
    unique_exercise_count: int = 0
    most_recent: Optional[PersonalRecord] = None


class FeedResult(BaseModel):
    events: list[ActivityEvent] = []
    warnings: list[str] = []

    @property
    def empty(self) -> bool:
        return not self.events


R = TypeVar("R", bound=BaseModel)


def parse_rows(model: Type[R], rows: Iterable[dict]) -> list[R]:
    """Validate ``rows`` into ``model`` instances, dropping invalid rows."""
    parsed: list[R] = []
    for row in rows:
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "dropping invalid %s row %r: %s",
                model.__name__,
                row.get("id"),
                e.errors()[0]["msg"] if e.errors() else e,
            )
    return parsed
