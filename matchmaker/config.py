from __future__ import annotations

import logging
import os
from dataclasses import dataclass

MISMATCH_POLICIES = {"skip", "abort"}


@dataclass(frozen=True)
class EngineConfig:
    neighbor_limit: int = 3
    batch_size: int = 5
    enrichment_timeout_seconds: float = 8.0
    mismatch_policy: str = "skip"
    native_similarity_enabled: bool = True


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be >= 1")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def load_config() -> EngineConfig:
    policy = os.getenv("DIMENSION_MISMATCH_POLICY", "skip").strip().lower()
    if policy not in MISMATCH_POLICIES:
        raise ValueError(f"Unsupported DIMENSION_MISMATCH_POLICY: {policy}")

    return EngineConfig(
        neighbor_limit=_int_env("MATCH_NEIGHBOR_LIMIT", 3),
        batch_size=_int_env("ENRICHMENT_BATCH_SIZE", 5),
        enrichment_timeout_seconds=_float_env("ENRICHMENT_TIMEOUT_SECONDS", 8.0),
        mismatch_policy=policy,
        native_similarity_enabled=os.getenv("ENABLE_NATIVE_SIMILARITY", "1") == "1",
    )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
