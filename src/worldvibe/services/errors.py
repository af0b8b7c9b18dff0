"""Failure kinds and exceptions raised by the admission pipeline."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Reason an inbound check-in was not admitted."""

    RATE_LIMITED = "rate_limited"
    PROFANITY = "profanity"
    PII = "pii"
    SPAM_PATTERN = "spam_pattern"
    INVALID_TIMESTAMP = "invalid_timestamp"
    INVALID_REGION = "invalid_region"
    INVALID_LOCATION = "invalid_location"
    INVALID_TOKEN = "invalid_token"
    STORE_UNAVAILABLE = "store_unavailable"
    TOKEN_ISSUANCE_FAILED = "token_issuance_failed"


CONTENT_FAILURE_KINDS: frozenset[FailureKind] = frozenset(
    {
        FailureKind.PROFANITY,
        FailureKind.PII,
        FailureKind.SPAM_PATTERN,
        FailureKind.INVALID_TIMESTAMP,
        FailureKind.INVALID_REGION,
        FailureKind.INVALID_LOCATION,
    }
)

FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.RATE_LIMITED: "You can only check in once per day",
    FailureKind.PROFANITY: "Note contains prohibited content",
    FailureKind.PII: "Note may not contain personal information",
    FailureKind.SPAM_PATTERN: "Note contains spam patterns",
    FailureKind.INVALID_TIMESTAMP: "Invalid timestamp format or value",
    FailureKind.INVALID_REGION: "Invalid region format",
    FailureKind.INVALID_LOCATION: "Invalid or unsupported location",
    FailureKind.INVALID_TOKEN: "Admission token is invalid or expired",
    FailureKind.STORE_UNAVAILABLE: "Rate limit state is temporarily unavailable",
    FailureKind.TOKEN_ISSUANCE_FAILED: "Could not issue an admission token, please retry",
}


class AdmissionError(RuntimeError):
    """Base exception for admission pipeline failures."""


class ContentValidationError(AdmissionError):
    """Raised by the content validator on the first violated rule."""

    def __init__(self, kind: FailureKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or FAILURE_MESSAGES.get(kind, kind.value))


class StoreUnavailableError(AdmissionError):
    """The ephemeral key-value store could not be reached or timed out."""


class TokenIssuanceError(AdmissionError):
    """An admission token could not be minted; the caller may retry."""

    kind = FailureKind.TOKEN_ISSUANCE_FAILED
    retryable = True


class PersistenceError(AdmissionError):
    """The check-in was admitted but the storage collaborator failed to record it."""
