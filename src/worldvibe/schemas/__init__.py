# src/worldvibe/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .check_in import (
    CheckInAccepted,
    CheckInPayload,
    Coordinates,
    EligibilityResponse,
    Emotion,
    PreflightResponse,
    RejectionResponse,
)

__all__ = [
    "CheckInAccepted", "CheckInPayload", "Coordinates",
    "EligibilityResponse", "Emotion",
    "PreflightResponse", "RejectionResponse",
]
