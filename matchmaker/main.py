from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from matchmaker.auth import AuthError, organizer_id
from matchmaker.config import configure_logging
from matchmaker.db import backend_summary, get_event, init_db, list_matches, mark_matches_introduced
from matchmaker.engine import MatchEngine, MatchGenerationError


class GenerateMatchesResponse(BaseModel):
    success: bool
    count: int
    message: str
    errors: Optional[List[str]] = None


class MatchOut(BaseModel):
    id: str
    attendee_a_id: str
    attendee_b_id: str
    attendee_a_name: Optional[str] = None
    attendee_b_name: Optional[str] = None
    similarity_score: Optional[float] = None
    common_interests: Optional[str] = None
    status: str
    introduced_at: Optional[str] = None
    created_at: str


class IntroducedRequest(BaseModel):
    match_ids: List[str] = Field(default_factory=list)


app = FastAPI(
    title="Event Matchmaking API",
    description="Generates attendee introductions from intake-answer embeddings.",
    version="0.1.0",
)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    init_db()


def get_engine() -> MatchEngine:
    return MatchEngine()


def _organizer(authorization: Optional[str] = Header(default=None)) -> str:
    try:
        return organizer_id(authorization)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def _owned_event(event_id: str, user_id: str = Depends(_organizer)) -> Dict[str, Any]:
    event = get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    if str(event["owner_id"]) != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return event


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "db_backend": backend_summary()["backend"]}


@app.post(
    "/api/events/{event_id}/generate-matches",
    response_model=GenerateMatchesResponse,
    response_model_exclude_none=True,
)
async def generate_matches(
    event: Dict[str, Any] = Depends(_owned_event),
    engine: MatchEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        summary = await engine.generate_matches(event["id"])
    except MatchGenerationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return summary.to_dict()


@app.get("/api/events/{event_id}/matches")
def event_matches(event: Dict[str, Any] = Depends(_owned_event)) -> Dict[str, Any]:
    rows = [MatchOut(**row) for row in list_matches(event["id"])]
    return {"event_id": event["id"], "matches": rows}


@app.post("/api/events/{event_id}/matches/introduced")
async def record_introductions(
    payload: IntroducedRequest, event: Dict[str, Any] = Depends(_owned_event)
) -> Dict[str, Any]:
    if not payload.match_ids:
        raise HTTPException(status_code=400, detail="match_ids array is required")
    updated = await run_in_threadpool(mark_matches_introduced, event["id"], payload.match_ids)
    return {"success": True, "updated": updated, "skipped": len(payload.match_ids) - updated}
