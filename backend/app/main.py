# app/main.py
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from app.deps import Settings
from app.schemas import utc_iso
from app.routers.balance import router as balance_router
from app.services.cache import TTLCache
from app.services.logging import (
    get_logger,
    start_trace,
    get_trace_id,
    log_kv,
)

LOG = get_logger("backend")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    cache: Optional[TTLCache] = None,
) -> FastAPI:
    """
    Build the gateway app. `http_client` and `cache` may be injected (tests,
    embedding); otherwise the lifespan owns a client and the cache is built
    from settings (None when caching is disabled).
    """
    settings = settings or Settings.from_env()

    # ---------- Lifespan (startup/shutdown) ----------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: Optional[httpx.AsyncClient] = None
        if app.state.http_client is None:
            owned = httpx.AsyncClient(follow_redirects=True)
            app.state.http_client = owned
        log_kv(
            LOG,
            logging.INFO,
            "gateway.start",
            version=settings.gateway_version,
            cache=int(app.state.balance_cache is not None),
            timeout_s=settings.upstream_timeout_s or "none",
        )
        yield
        if owned is not None:
            await owned.aclose()
            app.state.http_client = None

    app = FastAPI(title="Virtusim Gateway", version=settings.gateway_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.http_client = http_client
    app.state.balance_cache = cache if cache is not None else settings.build_cache()
    app.include_router(balance_router)

    # ---------- CORS (every response, before any status goes out) ----------
    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    # ---------- Per-request trace middleware ----------
    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        start_trace(request.headers.get("X-Trace-Id"))

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception:
            # Route and dependency failures skip cors_middleware on the way out.
            LOG.exception(
                "request.unhandled",
                extra={"kv": {"path": request.url.path}, "trace_id": get_trace_id()},
            )
            response = JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Internal server error",
                    "gateway": settings.gateway_name,
                    "timestamp": utc_iso(),
                },
                headers=CORS_HEADERS,
            )
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            log_kv(
                LOG,
                logging.INFO,
                "request.complete",
                method=request.method,
                path=request.url.path,
                status=getattr(response, "status_code", 0),
                duration_ms=duration_ms,
            )

        response.headers["X-Trace-Id"] = get_trace_id()
        return response

    # ---------- Health ----------
    @app.get("/healthz")
    async def healthz():
        return {"ok": True, "service": settings.gateway_name, "version": settings.gateway_version}

    return app


app = create_app()
