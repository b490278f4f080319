"""Haven Backend — FastAPI Routes"""

import logging
from datetime import datetime
from typing import Literal

from cachetools import LRUCache
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from config import CORS_ALLOWED_ORIGINS, GOOGLE_MAPS_API_KEY, FETCH_TIMEOUT_SECONDS, SESSION_LIMIT
from models import (
    LocationQuery, LocationRequest, LocationSnapshot,
    ScoreRequest, ScoreResponse, AnalyzeRequest, AnalyzeResponse,
)
from data_fetchers import make_client, GooglePlacesSearch
from aggregator import LocationSession
from event_analysis import analyze_events
from scoring import score, pre_jitter_score, classify

logger = logging.getLogger("haven.routes")


# ─────────────────────────── App Setup ──────────────────────────

app = FastAPI(title="Haven Safety API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class _SessionCache(LRUCache):
    """LRU of live sessions; evicted sessions have their in-flight work cancelled."""

    def popitem(self):
        key, session = super().popitem()
        logger.info(f"Evicting session {key}")
        session.close()
        return key, session


sessions = _SessionCache(maxsize=SESSION_LIMIT)


# ─────────────────────────── Lifecycle ──────────────────────────

@app.on_event("startup")
async def startup_event():
    """Create the shared HTTP client and place search used by every session."""
    app.state.http_client = make_client()
    app.state.place_search = GooglePlacesSearch(app.state.http_client, api_key=GOOGLE_MAPS_API_KEY)
    if not GOOGLE_MAPS_API_KEY:
        logger.warning("GOOGLE_MAPS_API_KEY not set — police-station lookups will be unavailable")


@app.on_event("shutdown")
async def shutdown_event():
    for session in list(sessions.values()):
        session.close()
    sessions.clear()
    await app.state.http_client.aclose()


def _get_session(session_id: str) -> LocationSession:
    session = sessions.get(session_id)
    if session is None or session.current is None:
        raise HTTPException(status_code=404, detail=f"Unknown session '{session_id}'")
    return session


# ─────────────────────────── Location Context ───────────────────

@app.post("/api/location", response_model=LocationSnapshot)
async def open_location(req: LocationRequest):
    """Start (or restart) risk evaluation for a session's new location."""
    query = LocationQuery(
        latitude=req.latitude,
        longitude=req.longitude,
        neighborhood=req.neighborhood,
        city=req.city,
        state=req.state,
        localTime=req.localTime,
    )
    user_stats = req.userStats or (req.profile.to_user_stats() if req.profile else {})

    session = sessions.get(req.sessionId)
    if session is None:
        session = LocationSession(
            req.sessionId,
            client=app.state.http_client,
            place_search=app.state.place_search,
        )
        sessions[req.sessionId] = session

    ctx = session.change_location(query, user_stats=user_stats)
    logger.info(f"Session {req.sessionId}: location → {query.normalized_neighborhood}, {query.city}")
    return ctx.snapshot()


@app.get("/api/location/{session_id}", response_model=LocationSnapshot)
async def get_location(
    session_id: str,
    wait: float = Query(default=0.0, ge=0.0, le=FETCH_TIMEOUT_SECONDS),
    until: Literal["scored", "settled"] = "scored",
):
    """Current snapshot.

    With `wait`, hold the request for up to `wait` seconds until the risk score
    is ready (`until=scored`) or every source has finished (`until=settled`).
    """
    ctx = _get_session(session_id).current
    if wait > 0:
        if until == "settled":
            return await ctx.wait_until_settled(wait)
        return await ctx.wait_until_scored(wait)
    return ctx.snapshot()


@app.delete("/api/location/{session_id}")
async def close_location(session_id: str):
    session = _get_session(session_id)
    session.close()
    sessions.pop(session_id, None)
    return {"status": "closed", "sessionId": session_id}


# ─────────────────────────── Pure Computations ──────────────────

@app.post("/api/score", response_model=ScoreResponse)
async def compute_score(req: ScoreRequest):
    now = req.at or datetime.now()
    base = pre_jitter_score(req.incidentCount, req.stationCount,
                            req.safestHourStart, req.safestHourEnd, now)
    value = score(
        req.incidentCount, req.stationCount,
        req.safestHourStart, req.safestHourEnd, now,
        jitter=None if req.jitter else (lambda: 0.0),
    )
    return ScoreResponse(score=value, preJitterScore=round(base, 1), state=classify(value))


@app.post("/api/events/analyze", response_model=AnalyzeResponse)
async def analyze(req: AnalyzeRequest):
    return AnalyzeResponse(analysis=analyze_events(req.events, req.at or datetime.now()))


# ─────────────────────────── Utility Endpoints ──────────────────

@app.get("/api/health")
async def health():
    return {"status": "ok", "sessions": len(sessions), "version": app.version}
