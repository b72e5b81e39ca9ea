"""
FPL Insights - Endpoints Module

FastAPI app initialization, CORS middleware, lifespan handler,
and the API endpoint handlers. Handlers only look things up in the
current snapshot and delegate to the projection engine.
"""

import os
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Query, Path
from fastapi.middleware.cors import CORSMiddleware

from fpl_insights.config import MODEL_CONFIG
from fpl_insights.models import PlayerProjection, RecommendationRequest
from fpl_insights.cache import cache, snapshot_store
from fpl_insights.services import project_fixture, project_player, project_team, resolve_horizon
from fpl_insights.planner import generate_recommendations
from fpl_insights.snapshot import ProjectionSnapshot, SnapshotLoadError, refresh_snapshot


logger = logging.getLogger("fpl_insights")

RETRY_AFTER_SECONDS = 5


# ============ LIFESPAN ============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        refresh_snapshot()
        logger.info("Snapshot loaded on startup")
    except SnapshotLoadError as e:
        logger.error(f"Startup snapshot load failed, serving 503 until refreshed: {e}")
    except Exception as e:
        logger.error(f"Startup snapshot load failed: {e}")

    yield

    cache.invalidate()


# ============ APP INITIALIZATION ============

app = FastAPI(title="FPL Insights API", version="1.0.0", lifespan=lifespan)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def require_snapshot() -> ProjectionSnapshot:
    snapshot = snapshot_store.get()
    if snapshot is None:
        raise HTTPException(
            status_code=503,
            detail=f"Projection data not loaded yet - please retry in {RETRY_AFTER_SECONDS}s",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    return snapshot


def player_payload(projection: PlayerProjection) -> Dict[str, Any]:
    payload = asdict(projection)
    payload["minutes_pct"] = projection.minutes_pct
    payload["team_momentum_pct"] = projection.momentum_pct
    return payload


# ============ INSIGHT ENDPOINTS ============

@app.get("/api/insights/fixture/{fixture_id}")
async def get_fixture_insight(fixture_id: int = Path(..., ge=1)):
    """Implied goals and clean sheet chances for one upcoming fixture."""
    snapshot = require_snapshot()
    fixture = snapshot.fixture(fixture_id)
    if fixture is None:
        raise HTTPException(404, "Fixture not found")

    key = ("fixture", snapshot.built_at, fixture_id)
    return cache.get_or_compute(
        key,
        MODEL_CONFIG["cache"].context_ttl,
        lambda: asdict(project_fixture(fixture, snapshot)),
    )


@app.get("/api/insights/player/{player_id}")
async def get_player_insight(
    player_id: int = Path(..., ge=1),
    horizon: int = Query(5, ge=1, le=10),
):
    """Expected points per fixture plus horizon aggregates, band and confidence."""
    snapshot = require_snapshot()
    player = snapshot.players.get(player_id)
    if player is None:
        raise HTTPException(404, "Player not found")

    horizon = resolve_horizon(horizon)
    key = ("player", snapshot.built_at, player_id, horizon)
    return cache.get_or_compute(
        key,
        MODEL_CONFIG["cache"].projection_ttl,
        lambda: player_payload(project_player(player, snapshot, horizon)),
    )


@app.get("/api/insights/team/{team_id}")
async def get_team_insight(
    team_id: int = Path(..., ge=1),
    horizon: int = Query(5, ge=1, le=10),
):
    """Team strength and clean sheet outlook over the coming fixtures."""
    snapshot = require_snapshot()
    if team_id not in snapshot.strength:
        raise HTTPException(404, "Team not found")

    horizon = resolve_horizon(horizon)
    key = ("team", snapshot.built_at, team_id, horizon)
    return cache.get_or_compute(
        key,
        MODEL_CONFIG["cache"].context_ttl,
        lambda: asdict(project_team(team_id, snapshot, horizon)),
    )


# ============ RECOMMENDATIONS ============

@app.post("/api/recommendations")
async def get_recommendations(request: RecommendationRequest):
    """
    Transfer suggestions for a squad.

    Every squad member is compared with the best affordable targets at
    their position, ordered by the requested strategy.
    """
    if not request.squad:
        raise HTTPException(status_code=400, detail="Invalid squad")
    player_ids = [entry.player_id for entry in request.squad]
    if len(set(player_ids)) != len(player_ids):
        raise HTTPException(status_code=400, detail="Invalid squad: duplicate players")
    snapshot = require_snapshot()

    known = [entry for entry in request.squad if entry.player_id in snapshot.players]
    if not known:
        raise HTTPException(status_code=400, detail="Invalid squad: no known players")

    return asdict(generate_recommendations(request, snapshot))


# ============ SNAPSHOT ============

@app.post("/api/snapshot/refresh")
async def refresh_projection_snapshot():
    """Reload season data from disk and swap in a new snapshot."""
    try:
        snapshot = refresh_snapshot()
    except SnapshotLoadError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Snapshot refresh failed: {e}",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    cache.invalidate()
    return {
        "status": "refreshed",
        "built_at": snapshot.built_at.isoformat(),
        "teams": len(snapshot.strength),
        "players": len(snapshot.players),
        "fixtures": len(snapshot.fixtures),
    }


@app.get("/api/config")
async def get_model_config():
    """
    Get current model configuration.

    Useful for understanding calibration values and debugging.
    """
    return {name: asdict(section) for name, section in MODEL_CONFIG.items()}


# ============ HEALTH CHECK ============

@app.get("/api/health")
async def health_check():
    """Health check endpoint with snapshot and cache status."""
    snapshot = snapshot_store.get()
    return {
        "status": "ok",
        "snapshot": {
            "loaded": snapshot is not None,
            "teams": len(snapshot.strength) if snapshot else 0,
            "players": len(snapshot.players) if snapshot else 0,
            "fixtures": len(snapshot.fixtures) if snapshot else 0,
            "stale": snapshot_store.is_stale(),
        },
        "cache_entries": len(cache),
        "snapshot_last_update": snapshot_store.last_update.isoformat() if snapshot_store.last_update else None,
    }


# ============ MAIN ============

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
