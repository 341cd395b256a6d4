# app/routers/balance.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from app.deps import Settings, get_balance_cache, get_http_client, get_settings
from app.providers.virtusim import UpstreamError, fetch_balance
from app.schemas import ErrorResponse, GatewayMeta, UpstreamErrorResponse, utc_iso
from app.services.cache import TTLCache, balance_cache_key
from app.services.logging import get_logger, log_kv

router = APIRouter(prefix="/api", tags=["balance"])
LOG = get_logger("balance")

# Every verb is routed here so the 405 body is ours, not the framework's.
ROUTED_METHODS = ["GET", "OPTIONS", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def _error(status_code: int, model: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(exclude_none=True))


@router.api_route("/balance", methods=ROUTED_METHODS)
async def balance(
    request: Request,
    apikey: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    cache: Optional[TTLCache] = Depends(get_balance_cache),
):
    # 1) CORS preflight
    if request.method == "OPTIONS":
        return Response(status_code=200)

    # 2) Method gate
    if request.method != "GET":
        return _error(405, ErrorResponse(error="Method not allowed. Use GET."))

    # 3) Param gate
    if not apikey:
        return _error(
            400,
            ErrorResponse(
                error="Missing apikey parameter",
                example=f"{request.base_url}api/balance?apikey=YOUR_KEY",
            ),
        )

    log_kv(LOG, logging.INFO, "balance.request", apikey=apikey)

    # 4) Cache lookup
    cache_key = balance_cache_key(apikey)
    if cache is not None:
        entry = cache.get(cache_key)
        if entry is not None:
            log_kv(LOG, logging.INFO, "balance.cache_hit", apikey=apikey, entries=len(cache))
            return {
                "success": True,
                **entry.payload,
                "cached": True,
                "cached_at": utc_iso(entry.stored_at),
                "gateway": settings.gateway_name,
            }

    # 5) Upstream
    try:
        data, response_time = await fetch_balance(
            client,
            apikey,
            base_url=settings.virtusim_api_url,
            timeout=settings.upstream_timeout_s,
        )
    except UpstreamError as e:
        log_kv(LOG, logging.ERROR, "balance.upstream_error", kind=e.kind, error=str(e))
        return _error(500, UpstreamErrorResponse(error=str(e), gateway=settings.gateway_name))

    log_kv(
        LOG,
        logging.INFO,
        "balance.upstream_ok",
        response_time=response_time,
        preview=json.dumps(data)[:100],
    )

    # 6) Cache store (bounded; evicts oldest on overflow)
    if cache is not None:
        cache.set(cache_key, data)

    gateway = GatewayMeta(
        name=settings.gateway_name,
        version=settings.gateway_version,
        response_time=response_time,
        cached=False,
        server=settings.gateway_server,
    )
    body: Dict[str, Any] = {"success": True, **data, "gateway": gateway.model_dump(exclude_none=True)}
    return body
