from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class FunctionResponse(BaseModel):
    """Acknowledgement returned by an edge function invocation."""

    function_name: str
    success: bool = True
    message: str = ""
    job_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, function_name: str, data: Any) -> FunctionResponse:
        if not isinstance(data, dict):
            return cls(function_name=function_name, payload={"raw": data})

        success = data.get("success")
        message = data.get("message") or data.get("error") or ""
        job_id = data.get("job_id")
        return cls(
            function_name=function_name,
            # Functions that omit the flag acknowledge with a 2xx only
            success=True if success is None else bool(success),
            message=str(message),
            job_id=str(job_id) if job_id else None,
            payload=data,
        )


def parse_content_range(header: str | None) -> int:
    """Parse a PostgREST Content-Range such as ``0-24/311`` or ``*/0`` into the total row count."""
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1].strip()
    if total in ("", "*"):
        return 0
    try:
        return int(total)
    except ValueError:
        return 0
