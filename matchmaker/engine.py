from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from matchmaker import db
from matchmaker.config import EngineConfig, load_config
from matchmaker.enrichment import Summarizer, enrich_candidates
from matchmaker.explanations import summarize_common_interests
from matchmaker.matching import MIN_POPULATION, collect_candidates
from matchmaker.pairs import DuplicatePairFilter
from matchmaker.persistence import persist_matches
from matchmaker.similarity import (
    DimensionMismatch,
    FallbackSimilarityResolver,
    ManualCosineComputation,
    NativeSimilaritySearch,
    SimilaritySearch,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_POPULATION_MESSAGE = "Need at least 2 completed attendees with responses to generate matches"

# loop -> event id -> [lock, runs holding or waiting]
_event_locks: Dict[asyncio.AbstractEventLoop, Dict[str, List[Any]]] = {}


class EngineState(str, Enum):
    IDLE = "idle"
    RESOLVING_POPULATION = "resolving_population"
    COLLECTING_CANDIDATES = "collecting_candidates"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    DONE = "done"


class MatchGenerationError(RuntimeError):
    pass


@dataclass
class GenerationSummary:
    success: bool
    count: int
    message: str
    errors: List[str] = field(default_factory=list)
    insufficient_population: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "count": self.count, "message": self.message}
        if self.errors:
            out["errors"] = list(self.errors)
        return out


@asynccontextmanager
async def _event_lock(event_id: str) -> AsyncIterator[None]:
    """Serializes runs for one event within the running loop.

    An entry lives only while some run holds or waits on it, so finished
    events and closed loops leave nothing behind.
    """
    loop = asyncio.get_running_loop()
    locks = _event_locks.setdefault(loop, {})
    entry = locks.get(event_id)
    if entry is None:
        entry = locks[event_id] = [asyncio.Lock(), 0]
    entry[1] += 1
    try:
        async with entry[0]:
            yield
    finally:
        entry[1] -= 1
        if entry[1] == 0:
            del locks[event_id]
            if not locks:
                del _event_locks[loop]


class MatchEngine:
    """Generates pending matches for one event.

    Runs RESOLVING_POPULATION -> COLLECTING_CANDIDATES -> ENRICHING ->
    PERSISTING -> DONE, leaving early when fewer than two attendees are
    eligible. Authorization happens before the engine is called.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        summarizer: Optional[Summarizer] = None,
        native_search: Optional[SimilaritySearch] = None,
    ) -> None:
        self.config = config or load_config()
        self.summarizer = summarizer or summarize_common_interests
        self.native_search = native_search
        self.state = EngineState.IDLE
        self.similarity_strategy: Optional[str] = None

    def _resolver(self, event_id: str) -> FallbackSimilarityResolver:
        native = self.native_search
        if native is None:
            native = NativeSimilaritySearch(event_id, enabled=self.config.native_similarity_enabled)
        return FallbackSimilarityResolver(native, ManualCosineComputation(self.config.mismatch_policy))

    async def generate_matches(self, event_id: str) -> GenerationSummary:
        async with _event_lock(event_id):
            try:
                return await self._run(event_id)
            finally:
                self.state = EngineState.DONE

    async def _run(self, event_id: str) -> GenerationSummary:
        self.state = EngineState.RESOLVING_POPULATION
        try:
            attendees = await asyncio.to_thread(db.list_eligible_attendees, event_id)
            existing = await asyncio.to_thread(db.list_match_pairs, event_id)
        except Exception as exc:
            raise MatchGenerationError(f"failed to load attendees for event {event_id}: {exc}") from exc

        if len(attendees) < MIN_POPULATION:
            logger.info("event %s has %d eligible attendees, nothing to match", event_id, len(attendees))
            return GenerationSummary(
                success=True,
                count=0,
                message=INSUFFICIENT_POPULATION_MESSAGE,
                insufficient_population=True,
            )

        self.state = EngineState.COLLECTING_CANDIDATES
        resolver = self._resolver(event_id)
        self.similarity_strategy = resolver.active_strategy
        try:
            collected = await collect_candidates(
                attendees,
                DuplicatePairFilter.from_matches(existing),
                resolver,
                k=self.config.neighbor_limit,
            )
        except DimensionMismatch as exc:
            raise MatchGenerationError(f"embedding dimensions differ within event {event_id}: {exc}") from exc
        self.similarity_strategy = resolver.active_strategy

        errors: List[str] = list(collected.errors)

        self.state = EngineState.ENRICHING
        enriched = await enrich_candidates(
            collected.candidates,
            self.summarizer,
            batch_size=self.config.batch_size,
            timeout_seconds=self.config.enrichment_timeout_seconds,
        )
        errors.extend(f"Error generating common interests: {r.reason}" for r in enriched if not r.ok)

        self.state = EngineState.PERSISTING
        persisted = await persist_matches(event_id, enriched)
        errors.extend(persisted.errors)

        logger.info(
            "event %s: %d candidates, %d matches created, %d errors (similarity=%s)",
            event_id,
            len(collected.candidates),
            persisted.created_count,
            len(errors),
            self.similarity_strategy,
        )
        return GenerationSummary(
            success=True,
            count=persisted.created_count,
            message=f"Generated {persisted.created_count} new matches",
            errors=errors,
        )
