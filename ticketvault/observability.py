"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request IDs and the wallet being resolved
- Request/response logging middleware
- Metrics collection (pass latency, skipped tokens, metadata fallbacks)
- Health check utilities

Configuration:
- TICKETVAULT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- TICKETVAULT_LOG_FORMAT: json, text (default: json in production)
- TICKETVAULT_PRODUCTION: Enable production mode

Usage:
    from ticketvault.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Resolved ticket", token_id=7, event_id=2)
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

if TYPE_CHECKING:
    from .chain.interfaces import TicketLedger

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
wallet_var: ContextVar[str] = ContextVar("wallet", default="")

# LogRecord attributes that are never copied into the JSON payload
_RESERVED_RECORD_KEYS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno",
    "pathname", "filename", "module", "lineno", "funcName",
    "exc_info", "exc_text", "stack_info", "message", "msecs",
    "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
))


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("TICKETVAULT_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("TICKETVAULT_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("TICKETVAULT_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "level": "WARNING",
        "logger": "ticketvault.core.ownership",
        "message": "Ownership lookup failed",
        "request_id": "abc-123",
        "wallet": "0xabc...",
        "token_id": 9,
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        wallet = wallet_var.get()
        if wallet:
            log_data["wallet"] = wallet

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
        }
        if fields:
            msg += " " + " ".join(f"{k}={v}" for k, v in fields.items())

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context fields.

    Usage:
        logger = get_logger(__name__)
        logger.warning("Ownership lookup failed", token_id=9, error=str(e))
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})

        # Move non-standard kwargs to extra
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextLogger instance with structured output
    """
    logger = logging.getLogger(name)
    return ContextLogger(logger, {})


def setup_logging() -> None:
    """
    Configure logging for the application.

    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up request context for logging.

    Generates a request ID (or honours X-Request-ID) and logs each
    request with its status code and duration.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_var.set(request_id)

        logger = get_logger("ticketvault.request")
        start_time = time.perf_counter()

        logger.debug(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING

            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            raise

        finally:
            request_id_var.set("")
            wallet_var.set("")


# ============================================================
# METRICS
# ============================================================

@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    For production, replace with Prometheus, StatsD, or similar.
    """

    # Counters
    passes_total: int = 0
    passes_failed: int = 0
    passes_abandoned: int = 0
    candidates_scanned: int = 0
    tokens_resolved: int = 0
    tokens_skipped: int = 0
    metadata_placeholders: int = 0

    skipped_by_reason: Dict[str, int] = field(default_factory=dict)

    # Histograms (simplified as lists)
    pass_latencies_ms: list = field(default_factory=list)

    def record_pass(
        self,
        latency_ms: float,
        candidates: int,
        resolved: int,
        skipped: int,
    ) -> None:
        """Record a completed resolution pass."""
        self.passes_total += 1
        self.candidates_scanned += candidates
        self.tokens_resolved += resolved
        self.tokens_skipped += skipped
        self.pass_latencies_ms.append(latency_ms)
        # Keep only last 1000 samples
        if len(self.pass_latencies_ms) > 1000:
            self.pass_latencies_ms = self.pass_latencies_ms[-1000:]

    def record_failed_pass(self) -> None:
        self.passes_total += 1
        self.passes_failed += 1

    def record_abandoned_pass(self) -> None:
        self.passes_abandoned += 1

    def record_skip(self, reason: str) -> None:
        self.skipped_by_reason[reason] = self.skipped_by_reason.get(reason, 0) + 1

    def record_metadata_placeholder(self) -> None:
        self.metadata_placeholders += 1

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        def percentile(data: list, p: float) -> Optional[float]:
            if not data:
                return None
            sorted_data = sorted(data)
            idx = int(len(sorted_data) * p)
            return sorted_data[min(idx, len(sorted_data) - 1)]

        return {
            "passes_total": self.passes_total,
            "passes_failed": self.passes_failed,
            "passes_abandoned": self.passes_abandoned,
            "candidates_scanned": self.candidates_scanned,
            "tokens_resolved": self.tokens_resolved,
            "tokens_skipped": self.tokens_skipped,
            "skipped_by_reason": dict(self.skipped_by_reason),
            "metadata_placeholders": self.metadata_placeholders,
            "pass_latency_p50_ms": percentile(self.pass_latencies_ms, 0.5),
            "pass_latency_p95_ms": percentile(self.pass_latencies_ms, 0.95),
            "pass_latency_p99_ms": percentile(self.pass_latencies_ms, 0.99),
        }


# Global metrics instance
_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


async def check_health(ledger: Optional["TicketLedger"] = None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        ledger: TicketLedger the resolver reads from

    Returns:
        HealthStatus with all check results
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    checks["liveness"] = {"status": "healthy"}

    if ledger is not None:
        try:
            connected = await ledger.is_connected()
            checks["ledger"] = {
                "status": "healthy" if connected else "unhealthy",
                "connected": connected,
                "backend": type(ledger).__name__,
            }
            if not connected:
                all_healthy = False
        except Exception as e:
            checks["ledger"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
