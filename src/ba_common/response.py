"""Envelope for the ops API (engine status, round bids, round result).

    {"code": 0, "message": "success", "data": {...},
     "timestamp": "...", "request_id": "req_..."}

On error `code` is the AppError code and `data` is null. Error envelopes reuse
the id the request log line carries, so a failed call can be found in the logs.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = Field(default_factory=new_request_id)


def success_response(data: Any = None) -> ApiResponse:
    return ApiResponse(code=0, message="success", data=data)


def error_response(code: int, message: str, request_id: str | None = None) -> ApiResponse:
    if request_id is None:
        return ApiResponse(code=code, message=message, data=None)
    return ApiResponse(code=code, message=message, data=None, request_id=request_id)
