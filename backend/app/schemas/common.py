from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: ErrorDetail
