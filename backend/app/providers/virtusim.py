# app/providers/virtusim.py
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import httpx

from app.services.logging import get_logger, log_kv

LOG = get_logger("virtusim")

VIRTUSIM_API_URL = "https://virtusim.com/api/v2/json.php"

# Fixed browser-like header set sent on every upstream call.
UPSTREAM_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://virtusim.com",
    "Referer": "https://virtusim.com/",
}


# ---------- Error kinds ----------

class UpstreamError(Exception):
    """Anything that stopped us from getting a usable balance payload."""
    kind = "upstream"


class UpstreamHttpError(UpstreamError):
    kind = "http_status"

    def __init__(self, status_code: int, reason: str):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Virtusim returned {status_code}: {reason}")


class UpstreamTimeoutError(UpstreamError):
    kind = "timeout"


class UpstreamNetworkError(UpstreamError):
    kind = "network"


class UpstreamDecodeError(UpstreamError):
    kind = "invalid_json"


# ---------- Fetch ----------

def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be re-serialized to the caller.
    raise ValueError(f"non-standard JSON constant {name}")


def _as_object(data: Any) -> Dict[str, Any]:
    # Passthrough merges keys into the response, so non-objects get wrapped.
    if isinstance(data, dict):
        return data
    return {"data": data}


async def fetch_balance(
    client: httpx.AsyncClient,
    apikey: str,
    *,
    base_url: str = VIRTUSIM_API_URL,
    timeout: Optional[float] = 10.0,
) -> Tuple[Dict[str, Any], int]:
    """
    Single GET against the Virtusim balance action.
    Returns (payload, response_time_ms) or raises an UpstreamError subclass.
    `timeout=None` disables the per-request timeout.
    """
    params = {"api_key": apikey, "action": "balance"}
    log_kv(LOG, logging.DEBUG, "virtusim.request", url=base_url, apikey=apikey)

    t0 = time.perf_counter()
    try:
        resp = await client.get(base_url, params=params, headers=UPSTREAM_HEADERS, timeout=timeout)
    except httpx.TimeoutException as e:
        raise UpstreamTimeoutError(f"Virtusim request timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise UpstreamNetworkError(str(e) or e.__class__.__name__) from e
    response_time = int((time.perf_counter() - t0) * 1000)

    log_kv(LOG, logging.INFO, "virtusim.response", status=resp.status_code, response_time=response_time)

    if not resp.is_success:
        raise UpstreamHttpError(resp.status_code, resp.reason_phrase)

    try:
        data = json.loads(resp.content, parse_constant=_reject_constant)
    except ValueError as e:
        raise UpstreamDecodeError(f"Invalid JSON from Virtusim: {e}") from e

    return _as_object(data), response_time
