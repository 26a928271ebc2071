#!/usr/bin/env python3

"""
Backend for the carpool planner.

Run locally:
  uvicorn backend.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations
import os
import traceback
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from carpool.runtime import configure_logging, env_path
from carpool.plan.config import EngineConfig, describe_routing_mode, load_engine_config, routing_capabilities
from carpool.plan.planner import CarpoolEngine, build_engine
from carpool.plan.router import create_router as create_plan_router
from carpool.plan.session import PlanningSession, SessionStore


# --------------------------------------------------------------------------------------------------
# Global Constants & Environment
# --------------------------------------------------------------------------------------------------
logger = configure_logging("carpool.backend")

DEBUG_API = os.getenv("DEBUG_API", "1") == "1"
DATA_DIR = env_path("CARPOOL_DATA_DIR", "./data")
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "*")
ALLOW_ORIGINS = [o.strip() for o in CORS_ALLOW_ORIGINS.split(",") if o.strip()] or ["*"]

CONFIG: Optional[EngineConfig] = None
ENGINE: Optional[CarpoolEngine] = None
SESSION: PlanningSession = PlanningSession()


def _get_engine() -> CarpoolEngine:
    if ENGINE is None:
        raise HTTPException(status_code=503, detail="Engine not initialised. POST /admin/reload.")
    return ENGINE


def _get_session() -> PlanningSession:
    return SESSION


def reload_engine() -> CarpoolEngine:
    """Rebuild config and engine from the environment; caches start empty."""
    global CONFIG, ENGINE
    CONFIG = load_engine_config()
    ENGINE = build_engine(CONFIG)
    return ENGINE


# --------------------------------------------------------------------------------------------------
# Admin Router (reload, save/load session)
# --------------------------------------------------------------------------------------------------
def admin_router() -> APIRouter:
    router = APIRouter(prefix="/admin", tags=["Admin"])

    @router.post("/reload")
    def admin_reload():
        engine = reload_engine()
        return {
            "status": "ok",
            "routing_mode": describe_routing_mode(engine.config),
            "capabilities": [k.value for k in engine.route_provider.capabilities],
        }

    @router.post("/save")
    def admin_save():
        path = SessionStore(DATA_DIR).save(SESSION)
        return {"status": "ok", "path": str(path)}

    @router.post("/load")
    def admin_load():
        global SESSION
        SESSION = SessionStore(DATA_DIR).load()
        return {
            "status": "ok",
            "drivers": len(SESSION.drivers),
            "pickups": len(SESSION.pickups),
            "has_destination": SESSION.destination is not None,
        }

    return router


# --------------------------------------------------------------------------------------------------
# Public Endpoints
# --------------------------------------------------------------------------------------------------
def register_routes(app: FastAPI):
    @app.get("/health")
    def health():
        base = {
            "status": "ok" if ENGINE else "needs_engine",
            "data_dir": str(DATA_DIR),
        }
        if ENGINE is None:
            return {**base, "message": "Engine not initialised. POST /admin/reload."}
        return {
            **base,
            "routing_mode": describe_routing_mode(ENGINE.config),
            "route_cache_size": ENGINE.route_provider.cache_size,
            "geocode_cache_size": ENGINE.resolver.cache_size,
            "drivers": len(SESSION.drivers),
            "pickups": len(SESSION.pickups),
        }

    @app.get("/config")
    def config():
        cfg = CONFIG or load_engine_config()
        return {
            "routing_mode": describe_routing_mode(cfg),
            "capabilities": [k.value for k in routing_capabilities(cfg)],
            "buffer_minutes": cfg.buffer_minutes,
            "default_seat_capacity": cfg.default_seat_capacity,
            "load_penalty_weight": cfg.load_penalty_weight,
            "overflow_policy": cfg.overflow_policy.value,
            "mock_speed_kmh": cfg.mock_speed_kmh,
            "geocoder_enabled": cfg.geocoder_enabled,
            "cors_allow_origins": ALLOW_ORIGINS,
        }


# --------------------------------------------------------------------------------------------------
# FastAPI App (with lifespan)
# --------------------------------------------------------------------------------------------------
def create_app() -> FastAPI:
    async def lifespan(app: FastAPI):
        try:
            engine = reload_engine()
            logger.info("Engine ready: %s", describe_routing_mode(engine.config))
        except Exception as e:
            logger.warning("Engine not initialised at startup: %s", e)
        yield

    app = FastAPI(title="Carpool Planner", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        payload = {"error": str(exc)}
        if DEBUG_API:
            payload["traceback"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=payload)

    app.include_router(admin_router())
    app.include_router(create_plan_router(_get_session, _get_engine))

    register_routes(app)
    return app

app = create_app()


# --------------------------------------------------------------------------------------------------
# Entrypoint
# --------------------------------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("backend.main:app", host="0.0.0.0", port=port, reload=False)
