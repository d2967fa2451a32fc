"""Activity feed and month-over-month statistics for the dashboard.

The feed merges four independent, user-scoped reads (recent PRs, completed
sessions, created workouts and created exercises) into one list ordered
newest first. A failing source contributes no events and is reported as a
warning; only when every source fails is the aggregation aborted.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from errors import InvalidInput, SourceUnavailable, TotalFailure
from models import (
    ActivityEvent,
    CompletedSession,
    Exercise,
    FeedResult,
    MonthlyProgress,
    PersonalRecord,
    PRSummary,
    Workout,
)
from tools import DateTools, MathTools

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW = 50


def pr_event(pr: PersonalRecord) -> ActivityEvent:
    unit = f" {pr.unit}" if pr.unit else ""
    return ActivityEvent(
        kind="pr",
        title="Nuevo PR",
        detail=f"{MathTools.format_number(pr.value)}{unit} ({pr.notes or 'Sin notas'})",
        occurred_at=pr.date_achieved,
    )


def session_event(session: CompletedSession) -> ActivityEvent:
    score = (
        f"{MathTools.format_number(session.performance_score)} pts · "
        if session.performance_score
        else ""
    )
    return ActivityEvent(
        kind="workout",
        title="WOD completado",
        detail=f"{score}{session.notes or ''}",
        occurred_at=session.date_completed,
    )


def created_workout_event(workout: Workout) -> ActivityEvent:
    return ActivityEvent(
        kind="created_workout",
        title="Entrenamiento creado",
        detail=workout.name,
        occurred_at=workout.created_at,
    )


def created_exercise_event(exercise: Exercise) -> ActivityEvent:
    detail = exercise.name
    if exercise.description:
        preview = exercise.description[:DESCRIPTION_PREVIEW]
        if len(exercise.description) > DESCRIPTION_PREVIEW:
            preview += "..."
        detail += f" - {preview}"
    return ActivityEvent(
        kind="created_exercise",
        title="Ejercicio creado",
        detail=detail,
        occurred_at=exercise.created_at,
    )


def rank_events(events: Iterable[ActivityEvent], total_limit: int) -> list[ActivityEvent]:
    """Sort ``events`` newest first and keep at most ``total_limit``.

    The sort is stable, so events with equal timestamps keep their merge
    order. Missing timestamps sort as the epoch.
    """
    ordered = sorted(events, key=lambda e: DateTools.sort_key(e.occurred_at), reverse=True)
    return ordered[:total_limit]


def compute_monthly_progress(
    workouts: Sequence[Workout],
    reference_date: Optional[datetime.date | datetime.datetime] = None,
) -> MonthlyProgress:
    """Compare sessions in the reference month against the month before."""
    if reference_date is None:
        reference_date = datetime.date.today()
    this_month = (reference_date.year, reference_date.month)
    last_month = DateTools.shift_month(reference_date.year, reference_date.month, -1)

    current: list[Workout] = []
    previous = 0
    for workout in workouts or []:
        day = DateTools.parse_date(workout.date)
        if day is None:
            continue
        key = (day.year, day.month)
        if key == this_month:
            current.append(workout)
        elif key == last_month:
            previous += 1

    return MonthlyProgress(
        sessions_this_month=len(current),
        sessions_last_month=previous,
        progress_percent=MathTools.percent_change(len(current), previous),
        average_duration_minutes=MathTools.average(
            [w.duration_minutes or 0 for w in current]
        ),
    )


def summarize_prs(prs: Sequence[PersonalRecord]) -> PRSummary:
    """Count PRs and distinct exercises and pick the latest dated record."""
    prs = list(prs or [])
    most_recent: Optional[PersonalRecord] = None
    latest: Optional[datetime.datetime] = None
    for pr in prs:
        achieved = DateTools.parse_timestamp(pr.date_achieved)
        if achieved is None:
            continue
        if latest is None or achieved > latest:
            latest = achieved
            most_recent = pr
    return PRSummary(
        total_count=len(prs),
        unique_exercise_count=len({pr.exercise_id for pr in prs if pr.exercise_id is not None}),
        most_recent=most_recent,
    )


class ActivityAggregator:
    """Build the activity feed for one user from the gateway's reads."""

    def __init__(self, gateway) -> None:
        self.gateway = gateway

    def _sources(
        self, user_id: str, limit: int
    ) -> list[tuple[str, Callable[[], Awaitable[list]], Callable]]:
        return [
            ("prs", lambda: self.gateway.list_recent_prs(user_id, limit), pr_event),
            (
                "user_workouts",
                lambda: self.gateway.list_recent_completed_sessions(user_id, limit),
                session_event,
            ),
            (
                "workouts",
                lambda: self.gateway.list_recent_created_workouts(user_id, limit),
                created_workout_event,
            ),
            (
                "exercises",
                lambda: self.gateway.list_recent_created_exercises(user_id, limit),
                created_exercise_event,
            ),
        ]

    async def build_activity_feed(
        self, user_id: str, per_source_limit: int = 3, total_limit: int = 6
    ) -> FeedResult:
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInput("user_id required")
        for name, value in (("per_source_limit", per_source_limit), ("total_limit", total_limit)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidInput(f"{name} must be a positive integer")

        sources = self._sources(user_id, per_source_limit)
        results = await asyncio.gather(
            *(fetch() for _name, fetch, _normalize in sources),
            return_exceptions=True,
        )

        events: list[ActivityEvent] = []
        failures: list[SourceUnavailable] = []
        for (name, _fetch, normalize), result in zip(sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failure = SourceUnavailable(name, result)
                logger.warning(
                    "activity source %s failed: %s",
                    name,
                    result,
                    extra={"wod_user_id": user_id, "wod_source": name},
                )
                failures.append(failure)
                continue
            events.extend(normalize(row) for row in (result or []))

        if len(failures) == len(sources):
            logger.error(
                "all activity sources failed", extra={"wod_user_id": user_id}
            )
            raise TotalFailure(failures)

        return FeedResult(
            events=rank_events(events, total_limit),
            warnings=[str(f) for f in failures],
        )
