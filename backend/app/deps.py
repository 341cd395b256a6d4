from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import Request
from pydantic import BaseModel, Field

from app.services.cache import TTLCache

# ---- Load .env early (once) ----
# backend/.env relative to this file; real environment wins
env_path = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=env_path, override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: str, cast=float):
    raw = os.getenv(name, default).strip()
    try:
        return cast(raw)
    except ValueError:
        kind = "an integer" if cast is int else "a number"
        raise RuntimeError(f"Invalid {name}='{raw}'. Must be {kind}.")


class Settings(BaseModel):
    virtusim_api_url: str = "https://virtusim.com/api/v2/json.php"
    # None -> no explicit timeout on the outbound call
    upstream_timeout_s: Optional[float] = 10.0
    cache_enabled: bool = True
    cache_ttl_s: float = Field(30.0, gt=0)
    cache_max_entries: int = Field(100, ge=1)
    gateway_name: str = "virtusim-gateway"
    gateway_version: str = "1.0.0"
    gateway_server: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = _env_number("UPSTREAM_TIMEOUT_S", "10")

        return cls(
            virtusim_api_url=os.getenv("VIRTUSIM_API_URL", "https://virtusim.com/api/v2/json.php"),
            upstream_timeout_s=timeout if timeout > 0 else None,
            cache_enabled=_env_bool("BALANCE_CACHE_ENABLED", True),
            cache_ttl_s=_env_number("BALANCE_CACHE_TTL_S", "30"),
            cache_max_entries=_env_number("BALANCE_CACHE_MAX_ENTRIES", "100", cast=int),
            gateway_name=os.getenv("GATEWAY_NAME", "virtusim-gateway"),
            gateway_version=os.getenv("GATEWAY_VERSION", "1.0.0"),
            gateway_server=os.getenv("GATEWAY_SERVER", "").strip() or None,
        )

    def build_cache(self) -> Optional[TTLCache]:
        if not self.cache_enabled:
            return None
        return TTLCache(ttl_seconds=self.cache_ttl_s, max_entries=self.cache_max_entries)


# ---- Request-scoped accessors (objects live on app.state) ----
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_balance_cache(request: Request) -> Optional[TTLCache]:
    """Process-wide balance cache, or None when caching is disabled."""
    return request.app.state.balance_cache
