from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set

from matchmaker import db

logger = logging.getLogger(__name__)


class DimensionMismatch(ValueError):
    pass


class SimilaritySearchUnavailable(RuntimeError):
    pass


@dataclass
class Neighbor:
    attendee: Dict[str, Any]
    distance: float


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise DimensionMismatch(f"vectors must have same length ({len(a)} != {len(b)})")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 1.0
    return 1 - (dot / (norm_a * norm_b))


class SimilaritySearch:
    """Nearest-neighbour lookup over one event's eligible attendees.

    ``find_nearest`` returns at most ``k`` neighbours of ``query`` drawn from
    ``pool``, most similar first, never including ``query`` itself.
    """

    name = "base"

    def is_available(self) -> bool:
        return True

    async def find_nearest(
        self, query: Dict[str, Any], pool: List[Dict[str, Any]], k: int
    ) -> List[Neighbor]:
        raise NotImplementedError


class NativeSimilaritySearch(SimilaritySearch):
    name = "native"

    def __init__(self, event_id: str, enabled: bool = True) -> None:
        self.event_id = event_id
        self.enabled = enabled

    def is_available(self) -> bool:
        return self.enabled and db.backend_summary()["backend"] == "postgres"

    async def find_nearest(
        self, query: Dict[str, Any], pool: List[Dict[str, Any]], k: int
    ) -> List[Neighbor]:
        try:
            rows = await asyncio.to_thread(
                db.find_similar_attendees, query["embedding"], self.event_id, query["id"], k
            )
        except Exception as exc:
            raise SimilaritySearchUnavailable(f"{type(exc).__name__}: {exc}") from exc

        by_id = {a["id"]: a for a in pool}
        neighbors: List[Neighbor] = []
        for row in rows:
            other = by_id.get(row["id"])
            # The database may know attendees that are not part of this run.
            if other is None or other["id"] == query["id"]:
                continue
            distance = float(row["distance"])
            # pgvector yields NaN when either side is a zero vector.
            if not math.isfinite(distance):
                distance = 1.0
            neighbors.append(Neighbor(attendee=other, distance=distance))
        neighbors.sort(key=lambda n: n.distance)
        return neighbors[:k]


class ManualCosineComputation(SimilaritySearch):
    name = "manual"

    def __init__(self, mismatch_policy: str = "skip") -> None:
        self.mismatch_policy = mismatch_policy
        self.errors: List[str] = []
        self._reported: Set[FrozenSet[str]] = set()

    async def find_nearest(
        self, query: Dict[str, Any], pool: List[Dict[str, Any]], k: int
    ) -> List[Neighbor]:
        scored: List[Neighbor] = []
        for other in pool:
            if other["id"] == query["id"]:
                continue
            try:
                distance = cosine_distance(query["embedding"], other["embedding"])
            except DimensionMismatch as exc:
                if self.mismatch_policy == "abort":
                    raise
                self._report_skip(query["id"], other["id"], exc)
                continue
            scored.append(Neighbor(attendee=other, distance=distance))

        scored.sort(key=lambda n: n.distance)
        return scored[:k]

    def _report_skip(self, a: str, b: str, exc: DimensionMismatch) -> None:
        pair = frozenset((a, b))
        if pair in self._reported:
            return
        self._reported.add(pair)
        message = f"Skipped pair {a}-{b}: {exc}"
        logger.warning(message)
        self.errors.append(message)


class FallbackSimilarityResolver:
    """Prefers the native search and switches to manual computation for the rest of the run once it fails."""

    def __init__(self, native: Optional[SimilaritySearch], manual: ManualCosineComputation) -> None:
        self.native = native if native is not None and native.is_available() else None
        self.manual = manual
        self.fallback_reason: Optional[str] = None

    @property
    def errors(self) -> List[str]:
        return self.manual.errors

    @property
    def active_strategy(self) -> str:
        return self.native.name if self.native is not None else self.manual.name

    async def find_nearest(
        self, query: Dict[str, Any], pool: List[Dict[str, Any]], k: int
    ) -> List[Neighbor]:
        if self.native is not None:
            try:
                return await self.native.find_nearest(query, pool, k)
            except SimilaritySearchUnavailable as exc:
                logger.warning("native similarity search failed, using manual computation: %s", exc)
                self.fallback_reason = str(exc)
                self.native = None
        return await self.manual.find_nearest(query, pool, k)
