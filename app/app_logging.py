"""Application and access logging setup.

- A JSON formatter (opt-in via ``LOG_JSON``) or a human-readable formatter.
- Timed rotation of ``app.log`` and ``access.log`` honouring retention and
  timezone options.
- An HTTP middleware writing one structured access line per request, with
  sensitive fields scrubbed.

Anonymous intake routes (``/api/cases``) are logged without client address,
forwarding headers or request body so that access logs cannot be used to
identify a submitter.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "apikey",
    "password",
    "access_password",
    "password_hash",
    "token",
    "access_token",
}

ANONYMOUS_PREFIXES = ("/api/cases",)
IDENTIFYING_HEADERS = {"x-forwarded-for", "x-real-ip", "forwarded", "user-agent", "referer"}
SKIP_PATHS = {"/api/health", "/api/metrics"}


def _scrub(data: object) -> object:
    """Recursively scrub sensitive fields from dictionaries and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if k.lower() in SENSITIVE_FIELDS else _scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


def _is_anonymous(path: str) -> bool:
    return path.startswith(ANONYMOUS_PREFIXES)


def _install_access_logging(app: FastAPI) -> None:
    """Install request/response access logging middleware.

    Each request gets an ``X-Request-Id`` (taken from the request or
    generated) that is echoed back in the response headers.
    """

    log_request_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    access_logger = logging.getLogger("uvicorn.access")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        path = request.url.path
        if path in SKIP_PATHS:
            return await call_next(request)

        anonymous = _is_anonymous(path)
        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        start = time.time()

        body_content = None
        if log_request_bodies and not anonymous:
            body_bytes = await request.body()

            async def receive() -> dict:  # pragma: no cover - internal
                return {"type": "http.request", "body": body_bytes, "more_body": False}

            request._receive = receive  # type: ignore[attr-defined]

            if body_bytes:
                try:
                    body_content = _scrub(json.loads(body_bytes))
                except ValueError:
                    body_content = body_bytes.decode("utf-8", errors="replace")

        response = await call_next(request)

        headers = _scrub(dict(request.headers))
        log_data: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
        if anonymous:
            log_data["headers"] = {
                k: v for k, v in cast(dict, headers).items() if k.lower() not in IDENTIFYING_HEADERS
            }
        else:
            client_ip = request.headers.get("X-Forwarded-For")
            if not client_ip and request.client is not None:
                client_ip = request.client.host
            log_data["client_ip"] = client_ip
            log_data["headers"] = headers
        if body_content is not None:
            log_data["body"] = body_content

        response.headers["X-Request-Id"] = request_id
        access_logger.info(json.dumps(log_data, default=str))
        return response


def _rotating_handler(
    log_dir: str, filename: str, *, retention_days: int, rotate_utc: bool
) -> TimedRotatingFileHandler:
    return TimedRotatingFileHandler(
        os.path.join(log_dir, filename),
        when="midnight",
        backupCount=retention_days,
        utc=rotate_utc,
    )


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise application and access loggers."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("LOG_JSON", "false").lower() == "true"
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)

    formatter = _get_formatter(log_json)
    log_level = getattr(logging, log_level_str, logging.INFO)

    app_logger = logging.getLogger("app")
    if not app_logger.handlers:
        handler = _rotating_handler(
            log_dir, "app.log", retention_days=retention_days, rotate_utc=rotate_utc
        )
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)
    app_logger.setLevel(log_level)

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.handlers.clear()
    handler = _rotating_handler(
        log_dir, "access.log", retention_days=retention_days, rotate_utc=rotate_utc
    )
    handler.setFormatter(formatter)
    access_logger.addHandler(handler)
    access_logger.setLevel(log_level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)
