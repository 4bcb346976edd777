"""
Diagnostic events emitted alongside fallback results.

Generation and evaluation never surface upstream failures to the caller;
these events are the side-channel for hosts that want to observe them.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


class DiagnosticEvent(BaseModel):
    """A masked upstream failure and what was done about it."""

    component: Literal["question_generator", "evaluation_engine"]
    category: str
    message: str
    fallback_used: bool = True
    fallback_count: int = Field(
        default=0,
        description="Items produced by the deterministic fallback"
    )
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
