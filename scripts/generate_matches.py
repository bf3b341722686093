from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from matchmaker.config import configure_logging
from matchmaker.db import get_event, init_db
from matchmaker.engine import MatchEngine, MatchGenerationError


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate pending matches for one event.")
    parser.add_argument("event_id")
    args = parser.parse_args()

    configure_logging()
    init_db()
    if not get_event(args.event_id):
        print(f"Event not found: {args.event_id}", file=sys.stderr)
        return 1

    try:
        summary = asyncio.run(MatchEngine().generate_matches(args.event_id))
    except MatchGenerationError as exc:
        print(f"Match generation failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
