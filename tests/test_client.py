import os
import sys
import shutil
import tempfile
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import WodClient
from rest_api import FitnessAPI


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.mkdtemp()
        self.api = FitnessAPI(
            db_path=os.path.join(self.tmpdir, "wod.db"),
            yaml_path=os.path.join(self.tmpdir, "settings.yaml"),
        )
        # route the client's requests through the ASGI app instead of the network
        self.client = WodClient(
            base_url="http://testserver", session=TestClient(self.api.app)
        )
        self.client.register("ana@example.com", "password123", "ana")
        self.client.login("ana@example.com", "password123")

    def tearDown(self) -> None:
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_create_and_list_workouts(self) -> None:
        wid = self.client.create_workout("Fran", date="2024-03-02", duration_minutes=12)
        workouts = self.client.list_workouts()
        self.assertEqual([w["id"] for w in workouts], [wid])

    def test_dashboard_calls(self) -> None:
        eid = self.client.create_exercise("Deadlift", type="fuerza")
        wid = self.client.create_workout("Grace", date="2024-03-02")
        self.client.add_pr(180, exercise_id=eid, unit="kg", date_achieved="2024-03-01")
        self.client.complete_workout(workout_id=wid, date_completed="2024-03-02")
        self.client.log_wod("For Time", "4:10", workout_id=wid, date="2024-03-02")

        feed = self.client.activity_feed(total_limit=3)
        self.assertEqual(len(feed["events"]), 3)
        self.assertEqual(self.client.pr_summary()["total_count"], 1)
        progress = self.client.monthly_progress("2024-03-20")
        self.assertEqual(progress["sessions_this_month"], 1)

    def test_errors_raise(self) -> None:
        self.client.token = None
        with self.assertRaises(Exception):
            self.client.list_workouts()


if __name__ == "__main__":
    unittest.main()
