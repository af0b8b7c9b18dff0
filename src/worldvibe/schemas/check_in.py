"""Check-in payload and admission response schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from worldvibe.core.settings import settings


class Emotion(str, Enum):
    """The five emotions a check-in can carry."""

    JOY = "joy"
    CALM = "calm"
    STRESS = "stress"
    ANTICIPATION = "anticipation"
    SADNESS = "sadness"


class Coordinates(BaseModel):
    """Geographic point supplied by the client."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


class CheckInPayload(BaseModel):
    """Inbound check-in, and the only data handed to storage once admitted."""

    emotion: Emotion
    intensity: int = Field(3, ge=1, le=5)
    note: str | None = Field(None, description="Optional free-text note")
    region: str | None = Field(None, description="ISO country or subdivision code, or GLOBAL")
    timestamp: str | None = Field(None, description="ISO-8601 time the feeling was observed")
    coordinates: Coordinates | None = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("emotion", mode="before")
    @classmethod
    def _lower_emotion(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("note")
    @classmethod
    def _limit_note(cls, value: str | None) -> str | None:
        if value is not None and len(value) > settings.note_max_length:
            raise ValueError(f"note must be at most {settings.note_max_length} characters")
        return value


class PreflightResponse(BaseModel):
    """Admission token granted by a pre-flight check."""

    token: str
    expires_in_seconds: int


class CheckInAccepted(BaseModel):
    """Response body for a recorded check-in."""

    id: str
    message: str = "Check-in recorded successfully"
    emotion: Emotion
    intensity: int
    region: str | None = None
    next_allowed_in_seconds: int
    next_allowed_at: datetime


class RejectionResponse(BaseModel):
    """Response body for a rejected admission."""

    kind: str
    message: str
    retry_after_seconds: int | None = None
    next_allowed_at: datetime | None = None


class EligibilityResponse(BaseModel):
    """Whether the caller may check in right now."""

    eligible: bool
    seconds_until_eligible: int
