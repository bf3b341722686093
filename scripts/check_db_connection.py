from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from matchmaker.db import VectorSearchUnsupported, backend_summary, init_db, install_similarity_function


def main() -> None:
    parser = argparse.ArgumentParser(description="Create tables and report the configured database backend.")
    parser.add_argument(
        "--install-vector-search",
        action="store_true",
        help="Also create the pgvector find_similar_attendees function (postgres only).",
    )
    args = parser.parse_args()

    info = backend_summary()
    init_db()
    print("Database check passed")
    print(f"Backend: {info['backend']}")
    print(f"URL: {info['database_url']}")

    if args.install_vector_search:
        try:
            install_similarity_function()
        except VectorSearchUnsupported as exc:
            print(f"Vector search not installed: {exc}")
            return
        print("Installed find_similar_attendees")


if __name__ == "__main__":
    main()
