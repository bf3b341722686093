from __future__ import annotations

from typing import Dict, Iterable, Set


class DuplicatePairFilter:
    """Symmetric set of attendee pairs already matched for one event."""

    def __init__(self) -> None:
        self._keys: Set[str] = set()

    @classmethod
    def from_matches(cls, rows: Iterable[Dict[str, str]]) -> "DuplicatePairFilter":
        pair_filter = cls()
        for row in rows:
            pair_filter.mark(row["attendee_a_id"], row["attendee_b_id"])
        return pair_filter

    def seen(self, a: str, b: str) -> bool:
        return f"{a}-{b}" in self._keys or f"{b}-{a}" in self._keys

    def mark(self, a: str, b: str) -> None:
        self._keys.add(f"{a}-{b}")
        self._keys.add(f"{b}-{a}")

    def __len__(self) -> int:
        return len(self._keys) // 2
