import datetime
import logging
import time
from typing import Optional

from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    APIRouter,
    Request,
    Depends,
)
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from activity_aggregator import ActivityAggregator
from auth_service import SessionService
from config import APP_VERSION, YamlConfig
from db import (
    UserRepository,
    ExerciseRepository,
    WorkoutRepository,
    PRRepository,
    UserWorkoutRepository,
    DailyWodRepository,
)
from errors import TotalFailure
from gateway import DataGateway
from models import LoginRequest, RegisterRequest
from stats_service import (
    StatisticsService,
    available_years,
    filter_prs,
    monthly_pr_counts,
    pr_progress_series,
)

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        for stale in [
            key
            for key, times in self.requests.items()
            if not times or now - times[-1] >= self.window
        ]:
            del self.requests[stale]
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


def _parse_reference(value: Optional[str]) -> Optional[datetime.date]:
    if value is None:
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=400, detail="reference_date must be in YYYY-MM-DD format"
        )


class FitnessAPI:
    """Provides REST endpoints for workouts, PRs and the dashboard."""

    def __init__(
        self,
        db_path: str = "wod.db",
        yaml_path: str = "settings.yaml",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.config = YamlConfig(yaml_path).settings()
        self.users = UserRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.workouts = WorkoutRepository(db_path)
        self.prs = PRRepository(db_path, self.exercises)
        self.user_workouts = UserWorkoutRepository(db_path, self.workouts)
        self.daily_wods = DailyWodRepository(db_path, self.workouts)
        self.sessions = SessionService(
            self.users,
            secret=self.config.jwt_secret,
            expire_minutes=self.config.token_expire_minutes,
        )
        self.gateway = DataGateway(db_path)
        self.aggregator = ActivityAggregator(self.gateway)
        self.statistics = StatisticsService(
            self.gateway,
            self.aggregator,
            per_source_limit=self.config.feed_per_source_limit,
            total_limit=self.config.feed_total_limit,
        )
        self.app = FastAPI(
            title="WOD Tracker API",
            description="REST API for workout, PR and WOD logging",
            version=APP_VERSION,
        )
        if rate_limit is not None:
            self.rate_limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(self.rate_limiter)
        self._setup_routes()

    def current_user_id(
        self, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)
    ) -> str:
        try:
            return self.sessions.current_user(
                credentials.credentials if credentials else None
            ).id
        except PermissionError as e:
            raise HTTPException(
                status_code=401,
                detail=str(e),
                headers={"WWW-Authenticate": "Bearer"},
            )

    def _setup_routes(self) -> None:
        auth_router = APIRouter(prefix="/auth", tags=["Auth"])
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        workouts_router = APIRouter(prefix="/workouts", tags=["Workouts"])
        prs_router = APIRouter(prefix="/prs", tags=["PRs"])
        dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])
        user_id_dep = Depends(self.current_user_id)

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.users.fetch_all("SELECT 1;")
                return {"status": "ok", "version": APP_VERSION}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @auth_router.post("/register")
        def register(payload: RegisterRequest):
            try:
                uid = self.sessions.register(
                    payload.email, payload.password, payload.username
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": uid}

        @auth_router.post("/login")
        def login(payload: LoginRequest):
            try:
                token = self.sessions.login(payload.email, payload.password)
            except PermissionError as e:
                raise HTTPException(status_code=401, detail=str(e))
            return {"access_token": token, "token_type": "bearer"}

        @auth_router.get("/me")
        def me(user_id: str = user_id_dep):
            return self.users.fetch_detail(user_id).model_dump()

        @exercises_router.get("")
        def list_exercises(user_id: str = user_id_dep):
            return [e.model_dump() for e in self.exercises.fetch_visible(user_id)]

        @exercises_router.post("")
        def create_exercise(
            name: str,
            type: str = None,
            description: str = None,
            user_id: str = user_id_dep,
        ):
            try:
                eid = self.exercises.add(user_id, name, type, description)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": eid}

        @exercises_router.put("/{exercise_id}")
        def update_exercise(
            exercise_id: str,
            name: str,
            type: str = None,
            description: str = None,
            user_id: str = user_id_dep,
        ):
            try:
                self.exercises.update(exercise_id, user_id, name, type, description)
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: str, user_id: str = user_id_dep):
            try:
                self.exercises.remove(exercise_id, user_id)
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @workouts_router.get("")
        def list_workouts(user_id: str = user_id_dep):
            return [w.model_dump() for w in self.workouts.fetch_for_user(user_id)]

        @workouts_router.get("/options")
        def workout_options(user_id: str = user_id_dep):
            return [
                {"id": w.id, "name": w.name, "description": w.description}
                for w in self.workouts.fetch_options(user_id)
            ]

        @workouts_router.post(
            "",
            summary="Create workout",
            description="Create a new workout owned by the current user.",
        )
        def create_workout(
            name: str,
            description: str = None,
            date: str = None,
            duration_minutes: int = None,
            user_id: str = user_id_dep,
        ):
            try:
                wid = self.workouts.create(
                    user_id, name, description, date, duration_minutes
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": wid}

        @workouts_router.put("/{workout_id}")
        def update_workout(
            workout_id: str,
            name: str,
            description: str = None,
            date: str = None,
            duration_minutes: int = None,
            user_id: str = user_id_dep,
        ):
            try:
                self.workouts.update(
                    workout_id, user_id, name, description, date, duration_minutes
                )
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @workouts_router.delete("/{workout_id}")
        def delete_workout(workout_id: str, user_id: str = user_id_dep):
            try:
                self.workouts.delete(workout_id, user_id)
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @prs_router.get("")
        def list_prs(
            search: str = "",
            year: str = "all",
            sort_by: str = "date_achieved",
            order: str = "desc",
            user_id: str = user_id_dep,
        ):
            try:
                prs = filter_prs(
                    self.prs.fetch_for_user(user_id), search, year, sort_by, order
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return [pr.model_dump() for pr in prs]

        @prs_router.post("")
        def create_pr(
            value: float,
            exercise_id: str = None,
            unit: str = None,
            date_achieved: str = None,
            notes: str = None,
            user_id: str = user_id_dep,
        ):
            try:
                pid = self.prs.add(
                    user_id, exercise_id, value, unit, date_achieved, notes
                )
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": pid}

        @prs_router.get("/summary")
        async def prs_summary(user_id: str = user_id_dep):
            return await self.statistics.pr_summary(user_id)

        @prs_router.get("/overview")
        async def prs_overview(
            reference_date: str = None, user_id: str = user_id_dep
        ):
            ref = _parse_reference(reference_date)
            return await self.statistics.pr_overview(user_id, ref)

        @prs_router.get("/progress")
        def prs_progress(user_id: str = user_id_dep):
            return pr_progress_series(self.prs.fetch_for_user(user_id))

        @prs_router.get("/years")
        def prs_years(user_id: str = user_id_dep):
            return available_years(self.prs.fetch_for_user(user_id))

        @prs_router.get("/monthly")
        def prs_monthly(year: int = None, user_id: str = user_id_dep):
            year = year or datetime.date.today().year
            return monthly_pr_counts(self.prs.fetch_for_user(user_id), year)

        @prs_router.put("/{pr_id}")
        def update_pr(
            pr_id: str,
            value: float,
            exercise_id: str = None,
            unit: str = None,
            date_achieved: str = None,
            notes: str = None,
            user_id: str = user_id_dep,
        ):
            try:
                self.prs.update(
                    pr_id, user_id, exercise_id, value, unit, date_achieved, notes
                )
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @prs_router.delete("/{pr_id}")
        def delete_pr(pr_id: str, user_id: str = user_id_dep):
            try:
                self.prs.delete(pr_id, user_id)
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.get("/user_workouts", tags=["Sessions"])
        def list_user_workouts(user_id: str = user_id_dep):
            return [s.model_dump() for s in self.user_workouts.fetch_for_user(user_id)]

        @self.app.post("/user_workouts", tags=["Sessions"])
        def complete_workout(
            workout_id: str = None,
            date_completed: str = None,
            performance_score: float = None,
            notes: str = None,
            user_id: str = user_id_dep,
        ):
            try:
                sid = self.user_workouts.add(
                    user_id,
                    workout_id,
                    date_completed or datetime.date.today().isoformat(),
                    performance_score,
                    notes,
                )
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": sid}

        @self.app.get("/daily_wods", tags=["WODs"])
        def list_daily_wods(user_id: str = user_id_dep):
            return [w.model_dump() for w in self.daily_wods.fetch_for_user(user_id)]

        @self.app.post("/daily_wods", tags=["WODs"])
        def log_wod(
            result_type: str,
            score: str,
            date: str = None,
            workout_id: str = None,
            notes: str = None,
            user_id: str = user_id_dep,
        ):
            try:
                wod_id = self.daily_wods.add(
                    user_id,
                    date or datetime.date.today().isoformat(),
                    result_type,
                    score,
                    workout_id,
                    notes,
                )
            except LookupError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": wod_id}

        @dashboard_router.get("/feed")
        async def activity_feed(
            per_source_limit: int = None,
            total_limit: int = None,
            user_id: str = user_id_dep,
        ):
            if per_source_limit is None:
                per_source_limit = self.config.feed_per_source_limit
            if total_limit is None:
                total_limit = self.config.feed_total_limit
            try:
                feed = await self.aggregator.build_activity_feed(
                    user_id, per_source_limit, total_limit
                )
            except TotalFailure as e:
                raise HTTPException(status_code=503, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {
                "events": [e.model_dump() for e in feed.events],
                "warnings": feed.warnings,
                "empty": feed.empty,
            }

        @dashboard_router.get("/progress")
        async def monthly_progress(
            reference_date: str = None, user_id: str = user_id_dep
        ):
            ref = _parse_reference(reference_date)
            return await self.statistics.monthly_progress(user_id, ref)

        @dashboard_router.get("/overview")
        async def overview(reference_date: str = None, user_id: str = user_id_dep):
            ref = _parse_reference(reference_date)
            try:
                return await self.statistics.dashboard_overview(user_id, ref)
            except TotalFailure as e:
                raise HTTPException(status_code=503, detail=str(e))

        self.app.include_router(auth_router)
        self.app.include_router(exercises_router)
        self.app.include_router(workouts_router)
        self.app.include_router(prs_router)
        self.app.include_router(dashboard_router)


def create_app(db_path: str = "wod.db", yaml_path: str = "settings.yaml") -> FastAPI:
    return FitnessAPI(db_path=db_path, yaml_path=yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
