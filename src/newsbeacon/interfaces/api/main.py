# --- src/newsbeacon/interfaces/api/main.py ---
"""Health and metrics endpoints served by the worker process."""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from newsbeacon.interfaces.api.metrics import router as metrics_router

log = logging.getLogger(__name__)


def create_app(services: Optional[Dict[str, Any]] = None, metrics_enabled: bool = True) -> FastAPI:
    app = FastAPI(title="NewsBeacon Worker", version="1.0.0")
    app.state.services = services or {}

    @app.get("/health")
    def health():
        broker = app.state.services.get("broker")
        scheduler = app.state.services.get("scheduler")
        checks = {
            "broker": bool(broker is not None and broker.is_connected),
            "scheduler": bool(scheduler is not None and scheduler.running),
        }
        ok = all(checks.values())
        return JSONResponse({"ok": ok, "checks": checks}, status_code=200 if ok else 503)

    if metrics_enabled:
        app.include_router(metrics_router)
    return app
