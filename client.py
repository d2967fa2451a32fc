import requests
from typing import Optional


class WodClient:
    """Simple REST client for the WOD tracker API."""

    def __init__(self, base_url: str = "http://localhost:8000", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = session or requests.Session()
        self.token: Optional[str] = None

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, json: Optional[dict] = None, **params):
        params = {k: v for k, v in params.items() if v is not None}
        resp = self.http.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json,
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()

    def register(self, email: str, password: str, username: Optional[str] = None) -> str:
        body = {"email": email, "password": password, "username": username}
        return self._request("POST", "/auth/register", json=body)["id"]

    def login(self, email: str, password: str) -> str:
        body = {"email": email, "password": password}
        self.token = self._request("POST", "/auth/login", json=body)["access_token"]
        return self.token

    def create_workout(self, name: str, **params) -> str:
        return self._request("POST", "/workouts", name=name, **params)["id"]

    def list_workouts(self):
        return self._request("GET", "/workouts")

    def create_exercise(self, name: str, **params) -> str:
        return self._request("POST", "/exercises", name=name, **params)["id"]

    def add_pr(self, value: float, **params) -> str:
        return self._request("POST", "/prs", value=value, **params)["id"]

    def complete_workout(self, **params) -> str:
        return self._request("POST", "/user_workouts", **params)["id"]

    def log_wod(self, result_type: str, score: str, **params) -> str:
        return self._request(
            "POST", "/daily_wods", result_type=result_type, score=score, **params
        )["id"]

    def activity_feed(self, **params) -> dict:
        return self._request("GET", "/dashboard/feed", **params)

    def monthly_progress(self, reference_date: Optional[str] = None) -> dict:
        return self._request("GET", "/dashboard/progress", reference_date=reference_date)

    def pr_summary(self) -> dict:
        return self._request("GET", "/prs/summary")
