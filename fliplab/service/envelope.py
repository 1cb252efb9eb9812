"""
Response envelopes for the search service.

Every response body carries ``success``. Failures also carry ``error`` (a
short label) and ``message`` (details for the caller).
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.responses import JSONResponse

from fliplab.logging_setup import get_request_id


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_body(data: Any = None, message: Optional[str] = None) -> dict:
    body = {
        "success": True,
        "data": data,
        "timestamp": _timestamp(),
        "requestId": get_request_id() or "unknown",
    }
    if message:
        body["message"] = message
    return body


def error_response(
    status_code: int,
    error: str,
    message: str,
    data: Any = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Build a ``success:false`` JSON response."""
    body = {
        "success": False,
        "error": error,
        "message": message,
        "timestamp": _timestamp(),
        "requestId": request_id or get_request_id() or "unknown",
    }
    if data is not None or status_code == 404:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)
