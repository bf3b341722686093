from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from matchmaker import db
from support import TempDatabase, seed_event


class DbUrlTest(unittest.TestCase):
    def setUp(self) -> None:
        self._original = os.environ.get("DATABASE_URL")

    def tearDown(self) -> None:
        if self._original is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = self._original

    def test_parse_database_url_variants(self) -> None:
        self.assertEqual(db._parse_database_url("sqlite:///tmp/a.db").kind, "sqlite")
        self.assertEqual(db._parse_database_url("postgresql://u:p@h:5432/d").kind, "postgres")
        self.assertEqual(db._parse_database_url("mysql://u:p@h:3306/d").kind, "mysql")
        with self.assertRaises(ValueError):
            db._parse_database_url("redis://localhost")

    def test_backend_summary_reports_current_backend(self) -> None:
        os.environ["DATABASE_URL"] = "sqlite:///tmp/summary.db"
        self.assertEqual(db.backend_summary()["backend"], "sqlite")

    def test_placeholders_rewritten_for_format_drivers(self) -> None:
        self.assertEqual(db._sql("sqlite", "a = ? AND b = ?"), "a = ? AND b = ?")
        self.assertEqual(db._sql("postgres", "a = ? AND b = ?"), "a = %s AND b = %s")


class SqliteStorageTest(unittest.TestCase):
    def setUp(self) -> None:
        self.database = TempDatabase()
        self.database.start()

    def tearDown(self) -> None:
        self.database.stop()

    def test_only_completed_attendees_with_embeddings_are_eligible(self) -> None:
        seed_event({"Ada": [1.0, 0.0], "Ben": [0.0, 1.0], "Cal": None})
        db.create_attendee("evt_1_dee", "evt_1", "dee@example.com", name="Dee", status="scheduled")
        db.save_response("evt_1_dee", {"q": "a"}, [1.0, 1.0])

        eligible = db.list_eligible_attendees("evt_1")
        self.assertEqual([a["id"] for a in eligible], ["evt_1_ada", "evt_1_ben"])
        self.assertEqual(eligible[0]["embedding"], [1.0, 0.0])
        self.assertIn("working_on", eligible[0]["answers"])

    def test_save_response_overwrites_existing(self) -> None:
        seed_event({"Ada": None})
        db.save_response("evt_1_ada", {"q": "updated"}, [0.5, 0.5], mode="chat")
        eligible = db.list_eligible_attendees("evt_1")
        self.assertEqual(eligible[0]["answers"], {"q": "updated"})

    def test_get_event_includes_owner(self) -> None:
        seed_event({}, owner_id="owner_9")
        event = db.get_event("evt_1")
        self.assertEqual(event["owner_id"], "owner_9")
        self.assertIsNone(db.get_event("missing"))

    def test_insert_matches_round_trip(self) -> None:
        seed_event({"Ada": [1.0], "Ben": [1.0], "Cal": [1.0]})
        created = db.insert_matches(
            [
                {
                    "event_id": "evt_1",
                    "attendee_a_id": "evt_1_ada",
                    "attendee_b_id": "evt_1_ben",
                    "similarity_score": 0.9,
                    "common_interests": "Retrieval",
                },
                {
                    "event_id": "evt_1",
                    "attendee_a_id": "evt_1_cal",
                    "attendee_b_id": "evt_1_ada",
                    "similarity_score": 0.4,
                    "common_interests": "Evals",
                },
            ]
        )
        self.assertEqual(created, 2)
        self.assertEqual(db.insert_matches([]), 0)

        pairs = db.list_match_pairs("evt_1")
        self.assertEqual(len(pairs), 2)
        matches = db.list_matches("evt_1")
        self.assertEqual(matches[0]["attendee_b_name"], "Ben")
        self.assertEqual(matches[0]["status"], "pending")
        self.assertIsNone(matches[0]["introduced_at"])

    def test_mark_introduced_only_once(self) -> None:
        seed_event({"Ada": [1.0], "Ben": [1.0]})
        db.insert_matches(
            [
                {
                    "event_id": "evt_1",
                    "attendee_a_id": "evt_1_ada",
                    "attendee_b_id": "evt_1_ben",
                    "similarity_score": 1.0,
                    "common_interests": "x",
                }
            ]
        )
        match_id = db.list_matches("evt_1")[0]["id"]
        self.assertEqual(db.mark_matches_introduced("evt_1", [match_id], "2026-10-19T00:00:00Z"), 1)
        self.assertEqual(db.mark_matches_introduced("evt_1", [match_id]), 0)
        self.assertEqual(db.mark_matches_introduced("other_event", [match_id]), 0)
        match = db.list_matches("evt_1")[0]
        self.assertEqual(match["status"], "introduced")
        self.assertEqual(match["introduced_at"], "2026-10-19T00:00:00Z")

    def test_vector_search_needs_postgres(self) -> None:
        with self.assertRaises(db.VectorSearchUnsupported):
            db.find_similar_attendees([1.0], "evt_1", "evt_1_ada")
        with self.assertRaises(db.VectorSearchUnsupported):
            db.install_similarity_function()

    def test_failed_bulk_insert_leaves_no_rows(self) -> None:
        seed_event({"Ada": [1.0], "Ben": [1.0]})
        good = {
            "event_id": "evt_1",
            "attendee_a_id": "evt_1_ada",
            "attendee_b_id": "evt_1_ben",
            "similarity_score": 1.0,
            "common_interests": "x",
        }
        ids = iter(["same", "same"])
        with patch("matchmaker.db.uuid.uuid4") as mock_uuid:
            mock_uuid.side_effect = lambda: type("U", (), {"hex": next(ids)})()
            with self.assertRaises(Exception):
                db.insert_matches([good, dict(good)])
        self.assertEqual(db.list_match_pairs("evt_1"), [])

    def test_insert_count_comes_from_the_write_itself(self) -> None:
        seed_event({"Ada": [1.0], "Ben": [1.0]})
        row = {
            "event_id": "evt_1",
            "attendee_a_id": "evt_1_ada",
            "attendee_b_id": "evt_1_ben",
            "similarity_score": 1.0,
            "common_interests": "x",
        }
        with patch("matchmaker.db._fetch_all", side_effect=RuntimeError("connection reset")):
            self.assertEqual(db.insert_matches([row, dict(row)]), 2)
        self.assertEqual(len(db.list_match_pairs("evt_1")), 2)

    def test_insert_larger_than_bind_variable_limit(self) -> None:
        # sqlite caps a single statement at 32766 bound variables.
        rows = [
            {
                "event_id": "evt_big",
                "attendee_a_id": f"a{i}",
                "attendee_b_id": f"b{i}",
                "similarity_score": 0.5,
                "common_interests": None,
            }
            for i in range(40000)
        ]
        self.assertEqual(db.insert_matches(rows), 40000)
        self.assertEqual(len(db.list_match_pairs("evt_big")), 40000)


if __name__ == "__main__":
    unittest.main()
