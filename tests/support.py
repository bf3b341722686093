from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from matchmaker import db


class TempDatabase:
    """Points DATABASE_URL at a throwaway sqlite file for the duration of a test."""

    def __init__(self) -> None:
        self._dir: Optional[tempfile.TemporaryDirectory] = None
        self._previous: Optional[str] = None

    def start(self) -> None:
        self._previous = os.environ.get("DATABASE_URL")
        self._dir = tempfile.TemporaryDirectory()
        os.environ["DATABASE_URL"] = f"sqlite:///{Path(self._dir.name) / 'matches.db'}"
        db.init_db()

    def stop(self) -> None:
        if self._previous is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = self._previous
        if self._dir is not None:
            self._dir.cleanup()


def seed_event(
    embeddings: Dict[str, Optional[List[float]]],
    event_id: str = "evt_1",
    owner_id: str = "owner_1",
    status: str = "completed",
) -> None:
    db.create_organization(f"org_{event_id}", "Organizer", owner_id)
    db.create_event(event_id, f"org_{event_id}", "Test Summit")
    for name, embedding in embeddings.items():
        attendee_id = f"{event_id}_{name.lower()}"
        db.create_attendee(attendee_id, event_id, f"{name.lower()}@example.com", name=name, status=status)
        db.save_response(
            attendee_id,
            {"working_on": f"{name} builds retrieval tooling", "looking_for": "evaluation partners"},
            embedding,
        )


def four_attendees() -> Dict[str, List[float]]:
    return {
        "Ada": [1.0, 0.0, 0.0],
        "Ben": [1.0, 0.0, 0.0],
        "Cal": [0.0, 1.0, 0.0],
        "Dee": [0.0, 0.0, 1.0],
    }
