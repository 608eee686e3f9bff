from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.logging_setup import setup_logging
from app.settings import Settings
from health.health import instance_health
from ingest.fetch import Fetcher
from ingest.instances import resolve_instance_configs
from ingest.scheduler import InstanceScheduler
from normalize.models import result_to_dict
from realtime.bus import EventBus
from realtime.sse import router as sse_router
from store.db import open_database
from store.results import SqliteResultStore


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(follow_redirects=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    setup_logging(settings.log_level)
    db = open_database(settings.db_path)
    bus = EventBus()
    store = SqliteResultStore(db)
    app.state.settings = settings
    app.state.db = db
    app.state.bus = bus

    async with build_http_client() as client:
        schedulers: dict[str, InstanceScheduler] = {}
        for config in resolve_instance_configs(settings):
            schedulers[config.instance_id] = InstanceScheduler(
                config,
                fetcher=Fetcher(
                    client, user_agent=settings.user_agent, timeout_ms=config.timeout_ms
                ),
                store=store,
                bus=bus,
                db=db,
            )
        if not schedulers:
            logger.warning("no instances configured; set WARN_REGION_ID or add instances/*.yaml")
        app.state.schedulers = schedulers
        for scheduler in schedulers.values():
            await scheduler.start()
        try:
            yield
        finally:
            for scheduler in schedulers.values():
                await scheduler.stop()
            with db.lock:
                db.conn.close()


app = FastAPI(lifespan=lifespan)
app.include_router(sse_router)


def _scheduler(request: Request, instance_id: str) -> InstanceScheduler | None:
    schedulers: dict[str, InstanceScheduler] = request.app.state.schedulers
    return schedulers.get(instance_id)


@app.get("/api/instances")
def api_instances(request: Request) -> JSONResponse:
    schedulers: dict[str, InstanceScheduler] = request.app.state.schedulers
    return JSONResponse(
        [
            {
                "instance_id": s.config.instance_id,
                "name": s.config.name,
                "feed_url": s.config.feed_url,
                "auto_refresh_seconds": s.config.auto_refresh_seconds,
                "phase": s.state.phase.value,
                "runs": s.state.runs,
                "failures": s.state.failures,
                "dropped": s.state.dropped,
                "last_error": s.state.last_error,
                "filter": s.config.describe(),
            }
            for s in schedulers.values()
        ]
    )


@app.get("/api/instances/{instance_id}/result")
def api_result(request: Request, instance_id: str) -> JSONResponse:
    scheduler = _scheduler(request, instance_id)
    if scheduler is None:
        return JSONResponse({"error": "not_found"}, status_code=404)
    result = scheduler.state.last_result or scheduler.state.last_good
    if result is None:
        return JSONResponse({"error": "no_result_yet"}, status_code=404)
    return JSONResponse(result_to_dict(result))


@app.post("/api/instances/{instance_id}/trigger")
async def api_trigger(
    request: Request, instance_id: str, url: str | None = None
) -> JSONResponse:
    scheduler = _scheduler(request, instance_id)
    if scheduler is None:
        return JSONResponse({"error": "not_found"}, status_code=404)
    result = await scheduler.trigger(from_timer=False, url=url)
    if result is None:
        return JSONResponse({"error": "run_in_progress"}, status_code=409)
    return JSONResponse(result_to_dict(result))


@app.get("/api/health")
def api_health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "instances": instance_health(request.app.state.db)})
