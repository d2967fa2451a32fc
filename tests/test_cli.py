import csv
import io
import json
import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cli
from db import PRRepository, WorkoutRepository


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "wod.db")


def test_demo_data_is_idempotent(db_file, capsys):
    uid = cli.demo_data(db_file, "demo@example.com", "demo-password")
    assert cli.demo_data(db_file, "demo@example.com", "demo-password") == uid
    assert "already exists" in capsys.readouterr().out
    assert len(PRRepository(db_file).fetch_for_user(uid)) == 2
    assert len(WorkoutRepository(db_file).fetch_for_user(uid)) == 2


def test_export_prs(db_file):
    cli.demo_data(db_file, "demo@example.com", "demo-password")
    rows = list(csv.DictReader(io.StringIO(cli.export_prs(db_file, "demo@example.com", "csv"))))
    assert [r["value"] for r in rows] == ["130.0", "120.0"]
    assert rows[0]["exercise"] == "Back Squat"
    data = json.loads(cli.export_prs(db_file, "demo@example.com", "json"))
    assert data[0]["notes"] == "Cinturón"


def test_unknown_user_exits(db_file):
    with pytest.raises(SystemExit):
        cli.export_prs(db_file, "nobody@example.com", "csv")


def test_print_feed_and_progress(db_file, capsys):
    cli.demo_data(db_file, "demo@example.com", "demo-password")
    capsys.readouterr()
    cli.print_feed(db_file, "demo@example.com", 3, 4)
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 4
    cli.print_progress(db_file, "demo@example.com", None)
    assert json.loads(capsys.readouterr().out)["sessions_this_month"] >= 1


def test_backup_and_restore(db_file, tmp_path):
    cli.demo_data(db_file, "demo@example.com", "demo-password")
    backup = str(tmp_path / "backup.db")
    cli.backup_db(db_file, backup)
    os.remove(db_file)
    cli.restore_db(backup, db_file)
    assert cli.export_prs(db_file, "demo@example.com", "json") != "[]"
