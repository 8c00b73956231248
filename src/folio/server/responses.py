"""JSON envelope shared by every server-of-record route.

    {"success": bool, "data": ..., "count": n, "error": "...", "timestamp": ms}
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from folio.exceptions import ValidationError
from folio.models import now_ms


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


def ok(data: Any = None, status_code: int = 200, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"success": True}
    if data is not None:
        content["data"] = _decimal_to_str(data)
        if isinstance(data, list):
            content["count"] = len(data)
    content.update(_decimal_to_str(extra))
    content["timestamp"] = now_ms()
    return JSONResponse(status_code=status_code, content=content)


def fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "timestamp": now_ms()},
    )


async def read_json(request: Request) -> Any:
    """Parsed request body. Raises ValidationError when it is not JSON."""
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError("Request body must be valid JSON") from e
