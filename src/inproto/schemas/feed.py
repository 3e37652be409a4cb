"""Feed poll Pydantic schemas."""

from typing import Any

from pydantic import BaseModel


class PollResponse(BaseModel):
    changed: bool
    sent: bool
    reason: str | None = None
    latest: dict[str, Any] | None = None
