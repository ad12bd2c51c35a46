"""
DTOs for FastAPI responses.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class HandleTaskResponse(BaseModel):
    ok: bool = True
    job_id: Optional[str] = None
    outcome: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
