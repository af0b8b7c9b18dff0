# src/worldvibe/services/__init__.py
"""Business logic services for the WorldVibe admission pipeline."""

from .admission import AdmissionDecision, AdmissionService, AdmissionState
from .content import ContentValidator, ValidationVerdict
from .ephemeral_store import MemoryEphemeralStore, RedisEphemeralStore, build_ephemeral_store
from .errors import (
    AdmissionError,
    ContentValidationError,
    FailureKind,
    PersistenceError,
    StoreUnavailableError,
    TokenIssuanceError,
)
from .identity import IdentityResolver
from .limiter import AdmissionLimiter
from .recorder import SqlCheckInRecorder
from .tokens import IssuedToken, TokenService

__all__ = [
    "AdmissionDecision", "AdmissionService", "AdmissionState",
    "ContentValidator", "ValidationVerdict",
    "MemoryEphemeralStore", "RedisEphemeralStore", "build_ephemeral_store",
    "AdmissionError", "ContentValidationError", "FailureKind",
    "PersistenceError", "StoreUnavailableError", "TokenIssuanceError",
    "IdentityResolver",
    "AdmissionLimiter",
    "SqlCheckInRecorder",
    "IssuedToken", "TokenService",
]
