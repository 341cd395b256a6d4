from __future__ import annotations

import logging
import os
import re
import sys
import uuid
import contextvars
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ROOT_LOGGER = "virtusim_gateway"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Fields that carry a caller's Virtusim key; only a prefix is ever written.
SECRET_FIELDS = frozenset({"apikey", "api_key"})

_INBOUND_TRACE_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="-")


# ---- Trace ids ----
def new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


def start_trace(inbound: Optional[str] = None) -> str:
    """
    Bind the trace id for the current request. A well-formed inbound
    X-Trace-Id (from an edge proxy or the caller) is kept, anything else
    gets a fresh id.
    """
    tid = inbound if inbound and _INBOUND_TRACE_RE.match(inbound) else new_trace_id()
    _trace_id_var.set(tid)
    return tid


def get_trace_id() -> str:
    return _trace_id_var.get()


def key_preview(apikey: str, keep: int = 8) -> str:
    return f"{apikey[:keep]}..."


# ---- Formatter ----
class KeyValueFormatter(logging.Formatter):
    """
    One line per record, key=value, API keys masked:
      ts=2025-09-27T01:23:45Z level=INFO logger=balance trace_id=q9c1b msg=balance.request apikey=a1b2c3d4...
    """

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(ROOT_LOGGER + "."):
            name = name[len(ROOT_LOGGER) + 1:]

        fields: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": name,
            "trace_id": getattr(record, "trace_id", get_trace_id()),
            "msg": record.getMessage(),
        }
        for k, v in (getattr(record, "kv", None) or {}).items():
            fields[k] = key_preview(str(v)) if k in SECRET_FIELDS else v

        line = " ".join(f"{k}={_render(v)}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _render(value: Any) -> str:
    if value is None:
        return "-"
    text = str(value)
    if " " in text or "=" in text or '"' in text:
        text = '"' + text.replace('"', '\\"') + '"'
    return text


# ---- Loggers ----
def _root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(KeyValueFormatter())
        root.addHandler(handler)
        root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
        root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Child of the gateway logger; the single stdout handler lives on the parent."""
    _root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_kv(logger: logging.Logger, level: int, msg: str, **kv: Any) -> None:
    logger.log(level, msg, extra={"kv": kv, "trace_id": get_trace_id()})
