# src/atlas_os/api/app.py

from __future__ import annotations

"""
HTTP surface.

Each function endpoint is `POST /functions/v1/<name>` with a JSON body that
names the action. Responses are JSON with permissive CORS headers, errors
are `{"error": message}` with the mapped status.
"""

import json
import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from ..core.results import HandlerResult, bad_request, not_found
from ..core.state import AppState
from ..orchestrator.functions import FUNCTIONS
from ..orchestrator.registry import ActionRegistry, ActionRequest
from ..service_log import ServiceLogger

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}


def _json(result: HandlerResult) -> JSONResponse:
    return JSONResponse(result.body, status_code=result.status)


def _service_logger(state: AppState, name: str) -> ServiceLogger:
    settings = state.settings
    store = state.service_logs if getattr(settings, "service_log_persist", True) else None
    return ServiceLogger(name, store, min_level=getattr(settings, "service_log_min_level", "info"))


def _run(state: AppState, registry: ActionRegistry, body: dict[str, Any]) -> HandlerResult:
    request = ActionRequest.from_body(body)
    slog = _service_logger(state, registry.name).bind(user_id=request.user_id)
    slog.info("Request received", {"action": request.action or registry.default_action})

    started = time.perf_counter()
    result = registry.dispatch(state, request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    slog.metric("request_duration", round(elapsed_ms, 2), metadata={"status": result.status})
    if result.ok:
        slog.info("Request completed", {"status": result.status})
    else:
        slog.warn("Request failed", {"status": result.status, "error": result.body.get("error")})
    return result


def create_app(state: AppState, *, functions: dict[str, ActionRegistry] | None = None) -> FastAPI:
    registries = functions if functions is not None else FUNCTIONS
    app = FastAPI(title=getattr(state.settings, "app_name", "Atlas OS"), version="0.1.0")
    app.state.atlas = state

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/functions/v1")
    async def list_functions() -> dict[str, Any]:
        return {"functions": {name: reg.describe() for name, reg in sorted(registries.items())}}

    @app.options("/functions/v1/{name}")
    async def preflight(name: str) -> Response:
        return Response(status_code=200, content="ok")

    @app.post("/functions/v1/{name}")
    async def call_function(name: str, request: Request) -> JSONResponse:
        registry = registries.get(name)
        if registry is None:
            return _json(not_found(f"Unknown function: {name}"))

        raw = await request.body()
        try:
            body = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            return _json(bad_request("Invalid JSON body"))
        if not isinstance(body, dict):
            return _json(bad_request("JSON body must be an object"))

        result = await run_in_threadpool(_run, state, registry, body)
        return _json(result)

    return app
