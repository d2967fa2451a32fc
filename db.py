import sqlite3
import aiosqlite
import datetime
import uuid
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional

from models import (
    RESULT_TYPES,
    CompletedSession,
    DailyWod,
    Exercise,
    PersonalRecord,
    User,
    Workout,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _check_date(value: Optional[str], field: str = "date") -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        return datetime.date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be in YYYY-MM-DD format")


def _check_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValueError("name required")
    return name.strip()


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "users": (
            """CREATE TABLE users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    username TEXT,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT NOT NULL
                );""",
            ["id", "email", "username", "password_hash", "role", "created_at"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    name TEXT NOT NULL,
                    type TEXT,
                    description TEXT,
                    created_at TEXT NOT NULL
                );""",
            ["id", "user_id", "name", "type", "description", "created_at"],
        ),
        "workouts": (
            """CREATE TABLE workouts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    name TEXT NOT NULL,
                    description TEXT,
                    date TEXT,
                    duration_minutes INTEGER,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "name",
                "description",
                "date",
                "duration_minutes",
                "created_at",
            ],
        ),
        "prs": (
            """CREATE TABLE prs (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    exercise_id TEXT,
                    value REAL,
                    unit TEXT,
                    date_achieved TEXT,
                    notes TEXT,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE SET NULL
                );""",
            ["id", "user_id", "exercise_id", "value", "unit", "date_achieved", "notes"],
        ),
        "user_workouts": (
            """CREATE TABLE user_workouts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    workout_id TEXT,
                    date_completed TEXT,
                    performance_score REAL,
                    notes TEXT,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "user_id",
                "workout_id",
                "date_completed",
                "performance_score",
                "notes",
            ],
        ),
        "daily_wods": (
            """CREATE TABLE daily_wods (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    workout_id TEXT,
                    result_type TEXT NOT NULL,
                    score TEXT NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "user_id",
                "date",
                "workout_id",
                "result_type",
                "score",
                "notes",
                "created_at",
            ],
        ),
    }

    def __init__(self, db_path: str = "wod.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        # copy into a staging table; references from other tables keep naming ``table``
        staging = f"{table}_new"
        conn.execute(f"DROP TABLE IF EXISTS {staging};")
        conn.execute(sql.replace(f"CREATE TABLE {table} (", f"CREATE TABLE {staging} (", 1))

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "created_at":
                        return f"'{_now()}'"
                    if col == "role":
                        return "'user'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {staging} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table};"
                )
            else:
                conn.execute(
                    f"INSERT INTO {staging} ({cols}) SELECT {cols} FROM {table};"
                )
        conn.execute(f"DROP TABLE {table};")
        conn.execute(f"ALTER TABLE {staging} RENAME TO {table};")

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            cols = [d[0] for d in cursor.description]
            return [dict(zip(cols, row)) for row in cursor.fetchall()]

    def _require_owned(self, table: str, row_id: str, user_id: str) -> None:
        rows = self.fetch_all(
            f"SELECT 1 FROM {table} WHERE id = ? AND user_id = ?;",
            (row_id, user_id),
        )
        if not rows:
            raise LookupError(f"{table} row {row_id} not found")

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)

    async def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            cols = [d[0] for d in cursor.description]
            rows = await cursor.fetchall()
            return [dict(zip(cols, row)) for row in rows]


class UserRepository(BaseRepository):
    """Repository for registered accounts."""

    def add(self, email: str, password_hash: str, username: str | None = None) -> str:
        uid = _new_id()
        try:
            self.execute(
                "INSERT INTO users (id, email, username, password_hash, role, created_at) "
                "VALUES (?, ?, ?, ?, 'user', ?);",
                (uid, email, username, password_hash, _now()),
            )
        except sqlite3.IntegrityError:
            raise ValueError("email already registered")
        return uid

    def fetch_credentials(self, email: str) -> Optional[Tuple[str, str]]:
        rows = self.fetch_all(
            "SELECT id, password_hash FROM users WHERE email = ?;", (email,)
        )
        return (rows[0][0], rows[0][1]) if rows else None

    def fetch_detail(self, user_id: str) -> User:
        rows = self.fetch_dicts(
            "SELECT id, email, username, role, created_at FROM users WHERE id = ?;",
            (user_id,),
        )
        if not rows:
            raise LookupError("user not found")
        return User.model_validate(rows[0])

    def delete_all(self) -> None:
        self._delete_all("users")


class ExerciseRepository(BaseRepository):
    """Repository for the exercise catalog (global and user-owned)."""

    _SELECT = "SELECT id, user_id, name, type, description, created_at FROM exercises"

    def add(
        self,
        user_id: str,
        name: str,
        type: str | None = None,
        description: str | None = None,
    ) -> str:
        eid = _new_id()
        self.execute(
            "INSERT INTO exercises (id, user_id, name, type, description, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (eid, user_id, _check_name(name), type or None, description, _now()),
        )
        return eid

    def add_global(self, name: str, type: str | None = None, description: str | None = None) -> str:
        eid = _new_id()
        self.execute(
            "INSERT INTO exercises (id, user_id, name, type, description, created_at) "
            "VALUES (?, NULL, ?, ?, ?, ?);",
            (eid, _check_name(name), type or None, description, _now()),
        )
        return eid

    def update(
        self,
        exercise_id: str,
        user_id: str,
        name: str,
        type: str | None = None,
        description: str | None = None,
    ) -> None:
        self._require_owned("exercises", exercise_id, user_id)
        self.execute(
            "UPDATE exercises SET name = ?, type = ?, description = ? WHERE id = ?;",
            (_check_name(name), type or None, description, exercise_id),
        )

    def remove(self, exercise_id: str, user_id: str) -> None:
        self._require_owned("exercises", exercise_id, user_id)
        self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))

    def fetch_visible(self, user_id: str) -> List[Exercise]:
        rows = self.fetch_dicts(
            f"{self._SELECT} WHERE user_id IS NULL OR user_id = ? ORDER BY name;",
            (user_id,),
        )
        return [Exercise.model_validate(r) for r in rows]

    def fetch_detail(self, exercise_id: str) -> Exercise:
        rows = self.fetch_dicts(f"{self._SELECT} WHERE id = ?;", (exercise_id,))
        if not rows:
            raise LookupError("exercise not found")
        return Exercise.model_validate(rows[0])

    def is_visible(self, exercise_id: str, user_id: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM exercises WHERE id = ? AND (user_id IS NULL OR user_id = ?);",
            (exercise_id, user_id),
        )
        return bool(rows)


class WorkoutRepository(BaseRepository):
    """Repository for workout definitions and scheduled sessions."""

    _SELECT = (
        "SELECT id, user_id, name, description, date, duration_minutes, created_at "
        "FROM workouts"
    )

    @staticmethod
    def _check_duration(duration_minutes: int | None) -> int | None:
        if duration_minutes is not None and duration_minutes < 0:
            raise ValueError("duration_minutes must be >= 0")
        return duration_minutes

    def create(
        self,
        user_id: str | None,
        name: str,
        description: str | None = None,
        date: str | None = None,
        duration_minutes: int | None = None,
    ) -> str:
        wid = _new_id()
        self.execute(
            "INSERT INTO workouts (id, user_id, name, description, date, duration_minutes, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                wid,
                user_id,
                _check_name(name),
                description,
                _check_date(date),
                self._check_duration(duration_minutes),
                _now(),
            ),
        )
        return wid

    def update(
        self,
        workout_id: str,
        user_id: str,
        name: str,
        description: str | None = None,
        date: str | None = None,
        duration_minutes: int | None = None,
    ) -> None:
        self._require_owned("workouts", workout_id, user_id)
        self.execute(
            "UPDATE workouts SET name = ?, description = ?, date = ?, duration_minutes = ? "
            "WHERE id = ?;",
            (
                _check_name(name),
                description,
                _check_date(date),
                self._check_duration(duration_minutes),
                workout_id,
            ),
        )

    def delete(self, workout_id: str, user_id: str) -> None:
        self._require_owned("workouts", workout_id, user_id)
        self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))

    def fetch_for_user(self, user_id: str) -> List[Workout]:
        rows = self.fetch_dicts(
            f"{self._SELECT} WHERE user_id = ? ORDER BY date IS NULL, date DESC, rowid DESC;",
            (user_id,),
        )
        return [Workout.model_validate(r) for r in rows]

    def fetch_options(self, user_id: str) -> List[Workout]:
        """Return global and own workouts ordered by name."""
        rows = self.fetch_dicts(
            f"{self._SELECT} WHERE user_id IS NULL OR user_id = ? ORDER BY name;",
            (user_id,),
        )
        return [Workout.model_validate(r) for r in rows]

    def fetch_detail(self, workout_id: str) -> Workout:
        rows = self.fetch_dicts(f"{self._SELECT} WHERE id = ?;", (workout_id,))
        if not rows:
            raise LookupError("workout not found")
        return Workout.model_validate(rows[0])

    def is_visible(self, workout_id: str, user_id: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM workouts WHERE id = ? AND (user_id IS NULL OR user_id = ?);",
            (workout_id, user_id),
        )
        return bool(rows)


class PRRepository(BaseRepository):
    """Repository for personal records."""

    def __init__(self, db_path: str = "wod.db", exercises: ExerciseRepository | None = None) -> None:
        super().__init__(db_path)
        self.exercises = exercises or ExerciseRepository(db_path)

    def _check_exercise(self, exercise_id: str | None, user_id: str) -> str | None:
        if exercise_id and not self.exercises.is_visible(exercise_id, user_id):
            raise LookupError("exercise not found")
        return exercise_id or None

    def add(
        self,
        user_id: str,
        exercise_id: str | None,
        value: float | None,
        unit: str | None = None,
        date_achieved: str | None = None,
        notes: str | None = None,
    ) -> str:
        pid = _new_id()
        self.execute(
            "INSERT INTO prs (id, user_id, exercise_id, value, unit, date_achieved, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                pid,
                user_id,
                self._check_exercise(exercise_id, user_id),
                value,
                unit or None,
                _check_date(date_achieved, "date_achieved"),
                notes,
            ),
        )
        return pid

    def update(
        self,
        pr_id: str,
        user_id: str,
        exercise_id: str | None,
        value: float | None,
        unit: str | None = None,
        date_achieved: str | None = None,
        notes: str | None = None,
    ) -> None:
        self._require_owned("prs", pr_id, user_id)
        self.execute(
            "UPDATE prs SET exercise_id = ?, value = ?, unit = ?, date_achieved = ?, notes = ? "
            "WHERE id = ?;",
            (
                self._check_exercise(exercise_id, user_id),
                value,
                unit or None,
                _check_date(date_achieved, "date_achieved"),
                notes,
                pr_id,
            ),
        )

    def delete(self, pr_id: str, user_id: str) -> None:
        self._require_owned("prs", pr_id, user_id)
        self.execute("DELETE FROM prs WHERE id = ?;", (pr_id,))

    def fetch_for_user(self, user_id: str) -> List[PersonalRecord]:
        rows = self.fetch_dicts(
            "SELECT p.id, p.user_id, p.exercise_id, p.value, p.unit, p.date_achieved, p.notes, "
            "e.name AS exercise_name, e.type AS exercise_type "
            "FROM prs p LEFT JOIN exercises e ON e.id = p.exercise_id "
            "WHERE p.user_id = ? "
            "ORDER BY p.date_achieved IS NULL, p.date_achieved DESC, p.rowid DESC;",
            (user_id,),
        )
        return [PersonalRecord.model_validate(r) for r in rows]


class UserWorkoutRepository(BaseRepository):
    """Repository for completed workout sessions."""

    def __init__(self, db_path: str = "wod.db", workouts: WorkoutRepository | None = None) -> None:
        super().__init__(db_path)
        self.workouts = workouts or WorkoutRepository(db_path)

    def add(
        self,
        user_id: str,
        workout_id: str | None = None,
        date_completed: str | None = None,
        performance_score: float | None = None,
        notes: str | None = None,
    ) -> str:
        if workout_id and not self.workouts.is_visible(workout_id, user_id):
            raise LookupError("workout not found")
        sid = _new_id()
        self.execute(
            "INSERT INTO user_workouts (id, user_id, workout_id, date_completed, performance_score, notes) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (
                sid,
                user_id,
                workout_id or None,
                _check_date(date_completed, "date_completed"),
                performance_score,
                notes,
            ),
        )
        return sid

    def fetch_for_user(self, user_id: str) -> List[CompletedSession]:
        rows = self.fetch_dicts(
            "SELECT id, user_id, workout_id, date_completed, performance_score, notes "
            "FROM user_workouts WHERE user_id = ? "
            "ORDER BY date_completed IS NULL, date_completed DESC, rowid DESC;",
            (user_id,),
        )
        return [CompletedSession.model_validate(r) for r in rows]


class DailyWodRepository(BaseRepository):
    """Repository for logged daily WOD results."""

    def __init__(self, db_path: str = "wod.db", workouts: WorkoutRepository | None = None) -> None:
        super().__init__(db_path)
        self.workouts = workouts or WorkoutRepository(db_path)

    def add(
        self,
        user_id: str,
        date: str,
        result_type: str,
        score: str,
        workout_id: str | None = None,
        notes: str | None = None,
    ) -> str:
        if _check_date(date) is None:
            raise ValueError("date required")
        if result_type not in RESULT_TYPES:
            raise ValueError(f"result_type must be one of {', '.join(RESULT_TYPES)}")
        if score is None or not score.strip():
            raise ValueError("score required")
        if workout_id and not self.workouts.is_visible(workout_id, user_id):
            raise LookupError("workout not found")
        wod_id = _new_id()
        self.execute(
            "INSERT INTO daily_wods (id, user_id, date, workout_id, result_type, score, notes, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                wod_id,
                user_id,
                _check_date(date),
                workout_id or None,
                result_type,
                score.strip(),
                notes or None,
                _now(),
            ),
        )
        return wod_id

    def fetch_for_user(self, user_id: str) -> List[DailyWod]:
        rows = self.fetch_dicts(
            "SELECT id, user_id, date, workout_id, result_type, score, notes, created_at "
            "FROM daily_wods WHERE user_id = ? ORDER BY date DESC, created_at DESC;",
            (user_id,),
        )
        return [DailyWod.model_validate(r) for r in rows]


class AsyncPRRepository(AsyncBaseRepository):
    """Async reads of personal records."""

    async def fetch_recent(self, user_id: str, limit: int) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT id, user_id, exercise_id, value, unit, date_achieved, notes "
            "FROM prs WHERE user_id = ? "
            "ORDER BY date_achieved IS NULL, date_achieved DESC, rowid DESC LIMIT ?;",
            (user_id, limit),
        )

    async def fetch_for_user(self, user_id: str) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT p.id, p.user_id, p.exercise_id, p.value, p.unit, p.date_achieved, p.notes, "
            "e.name AS exercise_name, e.type AS exercise_type "
            "FROM prs p LEFT JOIN exercises e ON e.id = p.exercise_id "
            "WHERE p.user_id = ? "
            "ORDER BY p.date_achieved IS NULL, p.date_achieved DESC, p.rowid DESC;",
            (user_id,),
        )


class AsyncUserWorkoutRepository(AsyncBaseRepository):
    """Async reads of completed sessions."""

    async def fetch_recent(self, user_id: str, limit: int) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT id, user_id, workout_id, date_completed, performance_score, notes "
            "FROM user_workouts WHERE user_id = ? "
            "ORDER BY date_completed IS NULL, date_completed DESC, rowid DESC LIMIT ?;",
            (user_id, limit),
        )


class AsyncWorkoutRepository(AsyncBaseRepository):
    """Async reads of workouts."""

    async def fetch_recent_created(self, user_id: str, limit: int) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT id, user_id, name, description, date, duration_minutes, created_at "
            "FROM workouts WHERE user_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?;",
            (user_id, limit),
        )

    async def fetch_for_user(self, user_id: str) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT id, user_id, name, description, date, duration_minutes, created_at "
            "FROM workouts WHERE user_id = ? ORDER BY date IS NULL, date DESC, rowid DESC;",
            (user_id,),
        )


class AsyncExerciseRepository(AsyncBaseRepository):
    """Async reads of exercises."""

    async def fetch_recent_created(self, user_id: str, limit: int) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT id, user_id, name, type, description, created_at "
            "FROM exercises WHERE user_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?;",
            (user_id, limit),
        )
