"""Structured JSON logging for the storefront API.

Every line carries the service identity, the active trace, and whatever the
request bound (shop, path). Shopper emails and credentials never reach the
sink: emails are masked and secrets are replaced before serialization.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from logging import LogRecord
from typing import Any, Dict, Mapping

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_SECRET_KEYS = frozenset({"access_token", "challenge_token", "signature", "token", "api_key"})
_EMAIL_KEYS = frozenset({"email", "authorized_email"})
_IDENTITY_KEYS = frozenset({"identity", "identity_key"})
REDACTED = "[redacted]"


def mask_email(value: str) -> str:
    """``shopper@example.com`` -> ``s***@example.com``."""

    local, at, domain = value.partition("@")
    if not at:
        return REDACTED
    return f"{local[:1]}***@{domain}"


def scrub_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    scrubbed: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in _SECRET_KEYS and value:
            scrubbed[key] = REDACTED
        elif key in _EMAIL_KEYS and isinstance(value, str):
            scrubbed[key] = mask_email(value)
        elif key in _IDENTITY_KEYS and isinstance(value, str) and value.startswith("email:"):
            # Grant identities embed the shopper's email.
            scrubbed[key] = f"email:{mask_email(value[len('email:'):])}"
        else:
            scrubbed[key] = value
    return scrubbed


def request_log_context(params: Mapping[str, str], path: str, request_id: str | None = None) -> Dict[str, str]:
    """Fields bound to every line logged while serving one storefront request."""

    context = {"request_id": request_id or uuid.uuid4().hex, "path": path}
    shop = params.get("shop")
    if shop:
        context["shop"] = shop
    return context


class InterceptHandler(logging.Handler):
    """Route stdlib logging (uvicorn, sqlalchemy, httpx) through Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in record.__dict__.items() if key not in _STDLIB_RECORD_ATTRS}
        message = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.bind(**extra).opt(depth=6, exception=record.exc_info).log(level, message)


def render_log(record: Mapping[str, Any], metadata: Mapping[str, str]) -> str:
    span_context = trace.get_current_span().get_span_context()

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
    }
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    payload.update(scrub_fields(record["extra"]))

    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {"type": getattr(exc_type, "__name__", str(exc_type)), "message": str(exc_value)}

    return json.dumps(payload, default=str)


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Configure Loguru + stdlib logging with structured JSON output."""

    logger.remove()
    metadata = {"service": service_name, "environment": environment, "version": version}
    logger.add(
        lambda message: print(render_log(message.record, metadata), file=sys.stdout),
        level=level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("uvicorn.access", "httpx", "httpcore", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
