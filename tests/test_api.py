from __future__ import annotations

import os
import unittest

from fastapi.testclient import TestClient

from matchmaker import db
from matchmaker.auth import issue_organizer_token
from matchmaker.config import EngineConfig
from matchmaker.engine import MatchEngine
from matchmaker.main import app, get_engine
from support import TempDatabase, four_attendees, seed_event


def _engine() -> MatchEngine:
    return MatchEngine(config=EngineConfig(), summarizer=lambda a, aa, b, bb: f"{a} meets {b}")


class ApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._prev_secret = os.environ.get("APP_JWT_SECRET")
        os.environ["APP_JWT_SECRET"] = "api-test-secret"
        self.database = TempDatabase()
        self.database.start()
        app.dependency_overrides[get_engine] = _engine
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()
        self.database.stop()
        if self._prev_secret is None:
            os.environ.pop("APP_JWT_SECRET", None)
        else:
            os.environ["APP_JWT_SECRET"] = self._prev_secret

    def _headers(self, user_id: str = "owner_1"):
        return {"Authorization": f"Bearer {issue_organizer_token(user_id)}"}

    def test_health(self) -> None:
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["db_backend"], "sqlite")

    def test_requires_authentication(self) -> None:
        seed_event(four_attendees())
        self.assertEqual(self.client.post("/api/events/evt_1/generate-matches").status_code, 401)
        res = self.client.post(
            "/api/events/evt_1/generate-matches", headers={"Authorization": "Bearer garbage"}
        )
        self.assertEqual(res.status_code, 401)

    def test_unknown_event(self) -> None:
        res = self.client.post("/api/events/nope/generate-matches", headers=self._headers())
        self.assertEqual(res.status_code, 404)

    def test_requires_ownership(self) -> None:
        seed_event(four_attendees())
        res = self.client.post("/api/events/evt_1/generate-matches", headers=self._headers("someone_else"))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(db.list_match_pairs("evt_1"), [])

    def test_generate_matches(self) -> None:
        seed_event(four_attendees())
        res = self.client.post("/api/events/evt_1/generate-matches", headers=self._headers())
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body, {"success": True, "count": 6, "message": "Generated 6 new matches"})

        listed = self.client.get("/api/events/evt_1/matches", headers=self._headers()).json()
        self.assertEqual(len(listed["matches"]), 6)
        self.assertEqual(listed["matches"][0]["similarity_score"], 1.0)
        self.assertIn("meets", listed["matches"][0]["common_interests"])

    def test_insufficient_population(self) -> None:
        seed_event({"Ada": [1.0, 0.0]})
        res = self.client.post("/api/events/evt_1/generate-matches", headers=self._headers())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["count"], 0)
        self.assertIn("at least 2", res.json()["message"])

    def test_abort_policy_maps_to_server_error(self) -> None:
        seed_event({"Ada": [1.0, 0.0, 0.0], "Ben": [1.0, 0.0]})
        app.dependency_overrides[get_engine] = lambda: MatchEngine(
            config=EngineConfig(mismatch_policy="abort"), summarizer=lambda *args: "x"
        )
        res = self.client.post("/api/events/evt_1/generate-matches", headers=self._headers())
        self.assertEqual(res.status_code, 500)

    def test_record_introductions(self) -> None:
        seed_event({"Ada": [1.0, 0.0], "Ben": [1.0, 0.0]})
        self.client.post("/api/events/evt_1/generate-matches", headers=self._headers())
        match_id = db.list_matches("evt_1")[0]["id"]

        res = self.client.post(
            "/api/events/evt_1/matches/introduced", json={"match_ids": [match_id]}, headers=self._headers()
        )
        self.assertEqual(res.json(), {"success": True, "updated": 1, "skipped": 0})
        again = self.client.post(
            "/api/events/evt_1/matches/introduced", json={"match_ids": [match_id]}, headers=self._headers()
        )
        self.assertEqual(again.json()["updated"], 0)
        self.assertEqual(db.list_matches("evt_1")[0]["status"], "introduced")

        empty = self.client.post("/api/events/evt_1/matches/introduced", json={"match_ids": []}, headers=self._headers())
        self.assertEqual(empty.status_code, 400)


if __name__ == "__main__":
    unittest.main()
