from __future__ import annotations

import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger("repricer.request")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)
logger.propagate = False


def _json_default(value: object) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def log_event(target: logging.Logger, event: str, *, level: int = logging.INFO, **fields: object) -> None:
    """Emit one JSON line describing a campaign lifecycle event."""
    payload = {"event": event, **fields}
    target.log(level, json.dumps(payload, ensure_ascii=True, default=_json_default))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start) * 1000)
            payload = self._build_payload(request, request_id, duration_ms, status=500)
            logger.exception(json.dumps(payload, ensure_ascii=True))
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        payload = self._build_payload(request, request_id, duration_ms, status=response.status_code)
        if response.status_code >= 500:
            logger.error(json.dumps(payload, ensure_ascii=True))
        elif response.status_code >= 400:
            logger.warning(json.dumps(payload, ensure_ascii=True))
        else:
            logger.info(json.dumps(payload, ensure_ascii=True))

        response.headers["X-Request-Id"] = request_id
        return response

    @staticmethod
    def _build_payload(request: Request, request_id: str, duration_ms: int, status: int) -> dict:
        return {
            "event": "http_request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": duration_ms,
            "tenant": request.headers.get("x-tenant-id"),
        }
