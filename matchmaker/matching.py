from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from matchmaker.pairs import DuplicatePairFilter
from matchmaker.similarity import FallbackSimilarityResolver

MIN_POPULATION = 2


@dataclass
class MatchCandidate:
    attendee_a: Dict[str, Any]
    attendee_b: Dict[str, Any]
    distance: float
    common_interests: Optional[str] = None

    @property
    def similarity_score(self) -> float:
        if not math.isfinite(self.distance):
            return 0.0
        return max(0.0, min(1.0, 1 - self.distance))

    def to_row(self, event_id: str) -> Dict[str, Any]:
        return {
            "event_id": event_id,
            "attendee_a_id": self.attendee_a["id"],
            "attendee_b_id": self.attendee_b["id"],
            "similarity_score": self.similarity_score,
            "common_interests": self.common_interests,
            "status": "pending",
        }


@dataclass
class CollectionResult:
    candidates: List[MatchCandidate] = field(default_factory=list)
    insufficient_population: bool = False
    errors: List[str] = field(default_factory=list)


def display_name(attendee: Dict[str, Any]) -> str:
    return attendee.get("name") or attendee["email"]


async def collect_candidates(
    attendees: List[Dict[str, Any]],
    pair_filter: DuplicatePairFilter,
    resolver: FallbackSimilarityResolver,
    k: int = 3,
) -> CollectionResult:
    if len(attendees) < MIN_POPULATION:
        return CollectionResult(insufficient_population=True)

    result = CollectionResult()
    # Attendees are processed one at a time so mark-on-emit never races a lookup.
    for attendee in attendees:
        for neighbor in await resolver.find_nearest(attendee, attendees, k):
            other = neighbor.attendee
            if pair_filter.seen(attendee["id"], other["id"]):
                continue
            result.candidates.append(
                MatchCandidate(attendee_a=attendee, attendee_b=other, distance=neighbor.distance)
            )
            pair_filter.mark(attendee["id"], other["id"])

    result.errors.extend(resolver.errors)
    return result
