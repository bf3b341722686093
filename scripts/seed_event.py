from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from matchmaker.auth import issue_organizer_token
from matchmaker.db import create_attendee, create_event, create_organization, init_db, save_response

DATA_PATH = ROOT / "data" / "sample_event.json"


def seed(payload: Dict[str, Any]) -> int:
    org = payload["organization"]
    event = payload["event"]
    create_organization(org["id"], org["name"], org["owner_id"])
    create_event(event["id"], org["id"], event["name"], event.get("status", "active"))

    for attendee in payload.get("attendees", []):
        create_attendee(
            attendee_id=attendee["id"],
            event_id=event["id"],
            email=attendee["email"],
            name=attendee.get("name"),
            phone=attendee.get("phone"),
            status=attendee.get("status", "imported"),
        )
        if "answers" in attendee:
            save_response(attendee["id"], attendee["answers"], attendee.get("embedding"), attendee.get("mode"))
    return len(payload.get("attendees", []))


def main() -> None:
    parser = argparse.ArgumentParser(description="Load an organization, event and attendees from JSON.")
    parser.add_argument("path", nargs="?", default=str(DATA_PATH))
    args = parser.parse_args()

    payload = json.loads(Path(args.path).read_text(encoding="utf-8"))
    init_db()
    count = seed(payload)
    print(f"Seeded {count} attendees into event {payload['event']['id']}")
    print(f"Organizer token: {issue_organizer_token(payload['organization']['owner_id'])}")


if __name__ == "__main__":
    main()
