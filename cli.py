import argparse
import asyncio
import csv
import datetime
import io
import json
import shutil
import time

import requests

from activity_aggregator import ActivityAggregator, compute_monthly_progress
from auth_service import SessionService
from config import YamlConfig
from db import (
    Database,
    DailyWodRepository,
    ExerciseRepository,
    PRRepository,
    UserRepository,
    UserWorkoutRepository,
    WorkoutRepository,
)
from gateway import DataGateway
from logging_config import setup_logging


def _user_id(db_path: str, email: str) -> str:
    creds = UserRepository(db_path).fetch_credentials(email.strip().lower())
    if creds is None:
        raise SystemExit(f"no user registered with email {email}")
    return creds[0]


def export_prs(db_path: str, email: str, fmt: str) -> str:
    """Return the user's PRs as CSV or JSON text."""
    prs = PRRepository(db_path).fetch_for_user(_user_id(db_path, email))
    rows = [
        {
            "exercise": pr.exercise_name or "",
            "value": pr.value,
            "unit": pr.unit or "",
            "date_achieved": pr.date_achieved or "",
            "notes": pr.notes or "",
        }
        for pr in prs
    ]
    if fmt == "json":
        return json.dumps(rows, indent=2, ensure_ascii=False)
    out = io.StringIO()
    writer = csv.DictWriter(
        out, fieldnames=["exercise", "value", "unit", "date_achieved", "notes"]
    )
    writer.writeheader()
    writer.writerows(rows)
    return out.getvalue()


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def demo_data(db_path: str, email: str = "demo@example.com", password: str = "demo-password") -> str:
    """Create a demo account with a few workouts, PRs and sessions."""
    users = UserRepository(db_path)
    existing = users.fetch_credentials(email)
    if existing is not None:
        print("Demo user already exists")
        return existing[0]
    uid = SessionService(users).register(email, password, "demo")
    exercises = ExerciseRepository(db_path)
    workouts = WorkoutRepository(db_path)
    today = datetime.date.today()
    squat = exercises.add(uid, "Back Squat", "fuerza", "Sentadilla trasera con barra")
    exercises.add(uid, "Row", "cardio")
    fran = workouts.create(uid, "Fran", "21-15-9 thrusters y dominadas", today.isoformat(), 12)
    workouts.create(uid, "Murph", "1 milla, 100 dominadas, 200 flexiones, 300 sentadillas, 1 milla",
                    (today - datetime.timedelta(days=35)).isoformat(), 55)
    prs = PRRepository(db_path, exercises)
    prs.add(uid, squat, 120, "kg", (today - datetime.timedelta(days=40)).isoformat())
    prs.add(uid, squat, 130, "kg", today.isoformat(), "Cinturón")
    UserWorkoutRepository(db_path, workouts).add(uid, fran, today.isoformat(), 87, "Rx")
    DailyWodRepository(db_path, workouts).add(uid, today.isoformat(), "For Time", "7:45", fran)
    print("Demo data inserted")
    return uid


def print_feed(db_path: str, email: str, per_source: int, total: int) -> None:
    aggregator = ActivityAggregator(DataGateway(db_path))
    feed = asyncio.run(
        aggregator.build_activity_feed(_user_id(db_path, email), per_source, total)
    )
    if feed.empty:
        print("Aún no se registran actividades.")
    for event in feed.events:
        print(f"{event.occurred_at or '-':<32} {event.title:<22} {event.detail}")
    for warning in feed.warnings:
        print(f"warning: {warning}")


def print_progress(db_path: str, email: str, reference: str | None) -> None:
    ref = datetime.date.fromisoformat(reference) if reference else None
    workouts = WorkoutRepository(db_path).fetch_for_user(_user_id(db_path, email))
    print(json.dumps(compute_monthly_progress(workouts, ref).model_dump(), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="WOD tracker utility commands")
    parser.add_argument("--yaml", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="wod.db")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="wod.db")
    exp.add_argument("--email", required=True)
    exp.add_argument("--fmt", choices=["csv", "json"], default="csv")
    exp.add_argument("--out", default=None)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="wod.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="wod.db")

    vac = sub.add_parser("vacuum")
    vac.add_argument("--db", default="wod.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="wod.db")
    demo.add_argument("--email", default="demo@example.com")

    feed = sub.add_parser("feed")
    feed.add_argument("--db", default="wod.db")
    feed.add_argument("--email", required=True)
    feed.add_argument("--per-source", type=int, default=None)
    feed.add_argument("--total", type=int, default=None)

    prog = sub.add_parser("progress")
    prog.add_argument("--db", default="wod.db")
    prog.add_argument("--email", required=True)
    prog.add_argument("--reference", default=None)

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    args = parser.parse_args()
    settings = YamlConfig(args.yaml).settings()
    setup_logging(settings.log_format, settings.log_level)

    if args.cmd == "serve":
        import uvicorn
        from rest_api import create_app

        uvicorn.run(create_app(args.db, args.yaml), host=args.host, port=args.port)
    elif args.cmd == "export":
        data = export_prs(args.db, args.email, args.fmt)
        if args.out:
            with open(args.out, "w", encoding="utf-8") as f:
                f.write(data)
        else:
            print(data)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "vacuum":
        Database(args.db).vacuum()
    elif args.cmd == "demo":
        demo_data(args.db, args.email)
    elif args.cmd == "feed":
        print_feed(
            args.db,
            args.email,
            args.per_source or settings.feed_per_source_limit,
            args.total or settings.feed_total_limit,
        )
    elif args.cmd == "progress":
        print_progress(args.db, args.email, args.reference)
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)


if __name__ == "__main__":
    main()
