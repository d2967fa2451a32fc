from __future__ import annotations
import asyncio
import datetime
from typing import Dict, List, Optional

from activity_aggregator import ActivityAggregator, compute_monthly_progress, summarize_prs
from gateway import DataGateway
from models import PersonalRecord, Workout
from tools import DateTools, MathTools


SORT_FIELDS = ("date_achieved", "value", "exercise_name")


def todays_wod(workouts: List[Workout]) -> Optional[dict]:
    """Return the workout with the latest date as a dashboard card."""
    dated = [w for w in workouts if w.date]
    if not dated:
        return None
    latest = max(dated, key=lambda w: DateTools.sort_key(w.date))
    return {
        "id": latest.id,
        "name": latest.name,
        "description": (latest.description or "")[:60] or None,
        "date": latest.date,
    }


def pr_label(pr: PersonalRecord | None) -> str | None:
    if pr is None:
        return None
    unit = f" {pr.unit}" if pr.unit else ""
    return f"{MathTools.format_number(pr.value)}{unit}"


def available_years(prs: List[PersonalRecord]) -> List[str]:
    years = set()
    for pr in prs:
        day = DateTools.parse_date(pr.date_achieved)
        if day is not None:
            years.add(str(day.year))
    return sorted(years, key=int, reverse=True)


def filter_prs(
    prs: List[PersonalRecord],
    search: str = "",
    year: str = "all",
    sort_by: str = "date_achieved",
    order: str = "desc",
) -> List[PersonalRecord]:
    """Filter PRs by exercise name or notes and by year, then sort them."""
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
    if order not in ("asc", "desc"):
        raise ValueError("order must be 'asc' or 'desc'")
    term = (search or "").lower()

    def matches(pr: PersonalRecord) -> bool:
        if term:
            name = (pr.exercise_name or "").lower()
            notes = (pr.notes or "").lower()
            if term not in name and term not in notes:
                return False
        if year != "all":
            day = DateTools.parse_date(pr.date_achieved)
            if day is None or str(day.year) != year:
                return False
        return True

    if sort_by == "exercise_name":
        key = lambda pr: pr.exercise_name or ""
    elif sort_by == "value":
        key = lambda pr: pr.value or 0
    else:
        key = lambda pr: DateTools.sort_key(pr.date_achieved)
    return sorted(
        (pr for pr in prs if matches(pr)), key=key, reverse=(order == "desc")
    )


def pr_progress_series(prs: List[PersonalRecord]) -> List[dict]:
    """Chronological PR values for each exercise with more than one PR."""
    groups: Dict[str, List[PersonalRecord]] = {}
    for pr in prs:
        groups.setdefault(pr.exercise_name or "Desconocido", []).append(pr)
    series: List[dict] = []
    for name, items in groups.items():
        if len(items) < 2:
            continue
        for pr in sorted(items, key=lambda p: DateTools.sort_key(p.date_achieved)):
            series.append(
                {
                    "date": pr.date_achieved,
                    "exercise": name,
                    "value": pr.value,
                    "unit": pr.unit,
                }
            )
    return series


def monthly_pr_counts(prs: List[PersonalRecord], year: int) -> List[dict]:
    """Return twelve ``{month, count}`` buckets for PRs achieved in ``year``."""
    counts = [0] * 12
    for pr in prs:
        day = DateTools.parse_date(pr.date_achieved)
        if day is not None and day.year == year:
            counts[day.month - 1] += 1
    return [{"month": i + 1, "count": c} for i, c in enumerate(counts)]


def recent_pr_months(
    prs: List[PersonalRecord], reference: datetime.date, months: int = 6
) -> List[dict]:
    """PR counts per ``YYYY-MM`` for PRs newer than ``months`` months ago."""
    cutoff = DateTools.shift_date_months(reference, -months)
    buckets: Dict[str, int] = {}
    for pr in prs:
        day = DateTools.parse_date(pr.date_achieved)
        if day is None or day <= cutoff:
            continue
        key = f"{day.year:04d}-{day.month:02d}"
        buckets[key] = buckets.get(key, 0) + 1
    return [{"month": k, "count": buckets[k]} for k in sorted(buckets)]


class StatisticsService:
    """Compute dashboard and PR page statistics for a user."""

    def __init__(
        self,
        gateway: DataGateway,
        aggregator: ActivityAggregator | None = None,
        per_source_limit: int = 3,
        total_limit: int = 6,
    ) -> None:
        self.gateway = gateway
        self.aggregator = aggregator or ActivityAggregator(gateway)
        self.per_source_limit = per_source_limit
        self.total_limit = total_limit

    async def monthly_progress(
        self, user_id: str, reference_date: datetime.date | None = None
    ) -> dict:
        workouts = await self.gateway.list_workouts_for_user(user_id)
        return compute_monthly_progress(workouts, reference_date).model_dump()

    async def pr_summary(self, user_id: str) -> dict:
        prs = await self.gateway.list_prs_for_user(user_id)
        return summarize_prs(prs).model_dump()

    async def dashboard_overview(
        self, user_id: str, reference_date: datetime.date | None = None
    ) -> dict:
        workouts, prs, feed = await asyncio.gather(
            self.gateway.list_workouts_for_user(user_id),
            self.gateway.list_prs_for_user(user_id),
            self.aggregator.build_activity_feed(
                user_id, self.per_source_limit, self.total_limit
            ),
        )
        latest = prs[0] if prs else None
        return {
            "todays_wod": todays_wod(workouts),
            "total_prs": len(prs),
            "latest_pr": pr_label(latest),
            "progress": compute_monthly_progress(workouts, reference_date).model_dump(),
            "feed": {
                "events": [e.model_dump() for e in feed.events],
                "warnings": feed.warnings,
                "empty": feed.empty,
            },
        }

    async def pr_overview(
        self, user_id: str, reference_date: datetime.date | None = None
    ) -> dict:
        today = reference_date or datetime.date.today()
        prs = await self.gateway.list_prs_for_user(user_id)
        three_months_ago = DateTools.shift_date_months(today, -3)
        dated = [(pr, DateTools.parse_date(pr.date_achieved)) for pr in prs]
        return {
            "summary": summarize_prs(prs).model_dump(),
            "this_year": sum(1 for _pr, d in dated if d is not None and d.year == today.year),
            "last_three_months": sum(
                1 for _pr, d in dated if d is not None and d > three_months_ago
            ),
            "monthly": recent_pr_months(prs, today),
            "recent": [pr.model_dump() for pr in prs[:3]],
        }
