from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class HealthStatus(BaseModel):
    status: Literal["ok", "error"]
    timestamp: str
    uptime: float
    environment: str
    version: str


class ErrorBody(BaseModel):
    error: str
