"""
Observability - logging, claim metrics and health checks.

Logging goes to stdout as JSON (production) or one-line text
(development). Every record emitted while a request is being served is
tagged with the request ID and, once known, the caller's address.

Configuration:
- CLAIMGATE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- CLAIMGATE_LOG_FORMAT: json, text (default: json in production)
- CLAIMGATE_PRODUCTION: Enable production mode

Usage:
    from claimgate.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Claim accepted", option_id="bnu")
"""

import json
import logging
import os
import sys
import threading
import time
import uuid
from collections import Counter, deque
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
client_address_var: ContextVar[str] = ContextVar("client_address", default="")

_TRUTHY = ("1", "true", "yes")


def is_production() -> bool:
    return os.environ.get("CLAIMGATE_PRODUCTION", "").lower() in _TRUTHY


@dataclass(frozen=True)
class LoggingConfig:
    """Where and how log records are written."""
    level: int = logging.INFO
    json_format: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        level_name = os.environ.get("CLAIMGATE_LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO

        log_format = os.environ.get("CLAIMGATE_LOG_FORMAT", "").lower()
        if log_format in ("json", "text"):
            json_format = log_format == "json"
        else:
            json_format = is_production()

        return cls(level=level, json_format=json_format)


# ============================================================
# FORMATTERS
# ============================================================

# Attributes every LogRecord has; anything else came in through `extra`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _request_context() -> Dict[str, str]:
    context = {}
    if request_id_var.get():
        context["request_id"] = request_id_var.get()
    if client_address_var.get():
        context["client_address"] = client_address_var.get()
    return context


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line:

        {"timestamp": "...", "level": "INFO", "logger": "claimgate.api.routes",
         "message": "Claim request finished", "request_id": "1f2e3d4c",
         "client_address": "203.0.113.7", "state": "responded", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_request_context())
        entry.update(_extra_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        # default=str keeps datetimes and enums from breaking a log line
        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """`2024-03-01 08:00:00 INFO     [1f2e3d4c] claimgate.core.service: message key=value`"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        request_id = request_id_var.get()
        tag = f"[{request_id[:8]}] " if request_id else ""

        line = f"{timestamp} {record.levelname:8} {tag}{record.name}: {record.getMessage()}"
        fields = _extra_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Accepts keyword arguments as structured fields: logger.info("msg", reason="x")."""

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel", "extra")

    def process(self, msg, kwargs):
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in self._PASSTHROUGH}
        kwargs["extra"] = {**kwargs.get("extra", {}), **fields}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


_HANDLER_NAME = "claimgate"


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Install the claimgate stdout handler on the root logger.

    Safe to call more than once; a previously installed claimgate handler
    is replaced, other handlers are left alone.
    """
    config = config or LoggingConfig.from_env()
    root = logging.getLogger()
    root.setLevel(config.level)

    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(config.level)
    handler.setFormatter(StructuredFormatter() if config.json_format else TextFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an ID, logs its outcome and timing, and echoes
    the ID back in X-Request-ID. Claim routes add the caller address to
    the context once it is resolved.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request_id_token = request_id_var.set(request_id)
        address_token = client_address_var.set("")
        logger = get_logger("claimgate.request")
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"{request.method} {request.url.path} failed",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        else:
            logger.log(
                logging.WARNING if response.status_code >= 500 else logging.INFO,
                f"{request.method} {request.url.path} -> {response.status_code}",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(request_id_token)
            client_address_var.reset(address_token)


# ============================================================
# METRICS
# ============================================================

_OUTCOME_BY_REASON = {
    None: "accepted",
    "rate_limited": "rate_limited",
    "storage_error": "failed",
}


class MetricsCollector:
    """
    In-process claim counters and a rolling window of commit latencies.

    Counters are keyed by outcome: accepted, rate_limited, rejected
    (invalid option or identity) and failed (store errors).
    """

    LATENCY_SAMPLES = 1000

    def __init__(self):
        self._lock = threading.Lock()
        self._outcomes: Counter = Counter()
        self._latencies: deque = deque(maxlen=self.LATENCY_SAMPLES)

    def record_outcome(self, reason: Optional[str], commit_ms: Optional[float]) -> None:
        """Count one claim. reason is None for an accepted claim."""
        with self._lock:
            self._outcomes[_OUTCOME_BY_REASON.get(reason, "rejected")] += 1
            if commit_ms is not None:
                self._latencies.append(commit_ms)

    def count(self, outcome: str) -> int:
        with self._lock:
            return self._outcomes[outcome]

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            outcomes = dict(self._outcomes)
            latencies = sorted(self._latencies)

        def nearest_rank(p: float) -> Optional[float]:
            if not latencies:
                return None
            return latencies[min(int(len(latencies) * p), len(latencies) - 1)]

        return {
            "claims_submitted": sum(outcomes.values()),
            "claims_accepted": outcomes.get("accepted", 0),
            "claims_rate_limited": outcomes.get("rate_limited", 0),
            "claims_rejected": outcomes.get("rejected", 0),
            "claims_failed": outcomes.get("failed", 0),
            "commit_latency_p50_ms": nearest_rank(0.5),
            "commit_latency_p95_ms": nearest_rank(0.95),
            "commit_latency_p99_ms": nearest_rank(0.99),
        }


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def _check_store(claim_store) -> Dict[str, Any]:
    try:
        count = claim_store.count()
    except Exception as e:
        # Class name only; driver messages can carry hostnames and users
        return {"status": "unhealthy", "error": type(e).__name__}
    return {
        "status": "healthy",
        "backend": type(claim_store).__name__,
        "record_count": count,
    }


def check_health(claim_store=None, compaction=None) -> HealthStatus:
    """
    Probe the claim store and report the compaction sweep.

    The store probe is a record count, which needs a working connection
    and the claims table.
    """
    started = time.perf_counter()
    checks: Dict[str, Dict[str, Any]] = {"liveness": {"status": "healthy"}}

    if claim_store is not None:
        checks["claim_store"] = _check_store(claim_store)
    if compaction is not None:
        checks["compaction"] = {"status": "healthy", **compaction.get_status()}

    return HealthStatus(
        healthy=all(check["status"] == "healthy" for check in checks.values()),
        checks=checks,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
