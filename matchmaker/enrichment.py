from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Union

from matchmaker.explanations import FALLBACK_INTERESTS, summarize_common_interests
from matchmaker.matching import MatchCandidate, display_name

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5

Summarizer = Callable[[str, Dict[str, str], str, Dict[str, str]], Any]


@dataclass
class Enriched:
    candidate: MatchCandidate
    text: str
    ok = True


@dataclass
class EnrichmentFailed:
    candidate: MatchCandidate
    reason: str
    fallback_text: str = FALLBACK_INTERESTS
    ok = False

    @property
    def text(self) -> str:
        return self.fallback_text


EnrichmentResult = Union[Enriched, EnrichmentFailed]


def _batches(items: List[MatchCandidate], size: int) -> List[List[MatchCandidate]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def _call_summarizer(summarizer: Summarizer, candidate: MatchCandidate) -> str:
    a, b = candidate.attendee_a, candidate.attendee_b
    args = (display_name(a), a.get("answers") or {}, display_name(b), b.get("answers") or {})
    if inspect.iscoroutinefunction(summarizer) or inspect.iscoroutinefunction(getattr(summarizer, "__call__", None)):
        result = summarizer(*args)
    else:
        result = await asyncio.to_thread(summarizer, *args)
    # Wrapped or decorated async callables still hand back an awaitable.
    if inspect.isawaitable(result):
        result = await result
    return result


async def _enrich_one(summarizer: Summarizer, candidate: MatchCandidate, timeout_seconds: float) -> EnrichmentResult:
    try:
        text = await asyncio.wait_for(_call_summarizer(summarizer, candidate), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return EnrichmentFailed(candidate=candidate, reason=f"timed out after {timeout_seconds:g}s")
    except Exception as exc:
        return EnrichmentFailed(candidate=candidate, reason=f"{type(exc).__name__}: {exc}")

    if not isinstance(text, str) or not text.strip():
        return EnrichmentFailed(candidate=candidate, reason="empty common interests text")
    return Enriched(candidate=candidate, text=text.strip())


async def enrich_candidates(
    candidates: List[MatchCandidate],
    summarizer: Summarizer = summarize_common_interests,
    batch_size: int = DEFAULT_BATCH_SIZE,
    timeout_seconds: float = 8.0,
) -> List[EnrichmentResult]:
    """Attach common-interest text to every candidate.

    Batches run one after another; calls inside a batch run concurrently.
    Returns one result per candidate in input order. A failed call yields an
    ``EnrichmentFailed`` carrying the fallback phrase, and the candidate is
    still given that text so it can be persisted.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    results: List[EnrichmentResult] = []
    for batch in _batches(candidates, batch_size):
        settled = await asyncio.gather(*(_enrich_one(summarizer, c, timeout_seconds) for c in batch))
        for outcome in settled:
            if not outcome.ok:
                a, b = outcome.candidate.attendee_a["id"], outcome.candidate.attendee_b["id"]
                logger.warning("common interests failed for %s-%s: %s", a, b, outcome.reason)
            outcome.candidate.common_interests = outcome.text
            results.append(outcome)
    return results
