from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from matchmaker import db
from matchmaker.enrichment import EnrichmentResult

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    created_count: int = 0
    errors: List[str] = field(default_factory=list)


async def persist_matches(
    event_id: str,
    enriched: Sequence[EnrichmentResult],
    insert: Optional[Callable[[List[Dict[str, Any]]], int]] = None,
) -> PersistResult:
    rows = [result.candidate.to_row(event_id) for result in enriched]
    if not rows:
        return PersistResult()

    try:
        created = await asyncio.to_thread(insert or db.insert_matches, rows)
    except Exception as exc:
        logger.error("bulk insert of %d matches for event %s failed: %s", len(rows), event_id, exc)
        return PersistResult(errors=[f"Failed to insert matches: {exc}"])

    if created < len(rows):
        logger.warning("storage confirmed %d of %d matches for event %s", created, len(rows), event_id)
    return PersistResult(created_count=created)
