"""
Values exchanged between the token verifier, the retry policy resolver and
the worker. All timestamps are Unix epoch seconds.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class DecodedToken(BaseModel):
    iss: str
    aud: Union[str, list[str]]
    exp: int

    model_config = ConfigDict(frozen=True, extra="ignore")


class RetryPolicy(BaseModel):
    """
    Queue retry configuration. Only max_attempts and max_retry_duration drive
    the worker; the backoff bounds are informational (Cloud Tasks applies them).
    """

    # Cloud Tasks reports -1 for unlimited attempts.
    max_attempts: int
    max_retry_duration: Optional[int] = None
    min_backoff: Optional[float] = None
    max_backoff: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class RemoteTask(BaseModel):
    name: str
    first_attempt_dispatched_at: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class AttemptContext(BaseModel):
    attempts: int = Field(ge=1)
    queue: str
    max_tries: int
    retry_until: Optional[int] = None

    model_config = ConfigDict(frozen=True)
