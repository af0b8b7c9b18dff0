# src/worldvibe/api/v1/endpoints/check_ins.py
"""Check-in admission endpoints for the WorldVibe API."""

import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Body, Header, HTTPException, status

from worldvibe.api.v1.dependencies import (
    AdmissionServiceDep,
    ClientOriginDep,
    RequestSizeLimit,
)
from worldvibe.db.time import utcnow
from worldvibe.schemas.check_in import (
    CheckInAccepted,
    CheckInPayload,
    EligibilityResponse,
    PreflightResponse,
    RejectionResponse,
)
from worldvibe.services.admission import AdmissionDecision
from worldvibe.services.errors import (
    CONTENT_FAILURE_KINDS,
    FAILURE_MESSAGES,
    FailureKind,
    PersistenceError,
    TokenIssuanceError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/check-ins", tags=["check-ins"])

TOKEN_RETRY_AFTER_SECONDS = 5
PERSISTENCE_RETRY_AFTER_SECONDS = 30


def _status_for(kind: FailureKind) -> int:
    if kind is FailureKind.RATE_LIMITED:
        return status.HTTP_429_TOO_MANY_REQUESTS
    if kind is FailureKind.INVALID_TOKEN:
        return status.HTTP_403_FORBIDDEN
    if kind in CONTENT_FAILURE_KINDS:
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_503_SERVICE_UNAVAILABLE


def _rejection(kind: FailureKind, retry_after_seconds: int | None = None) -> HTTPException:
    next_allowed_at = None
    if kind is FailureKind.RATE_LIMITED and retry_after_seconds:
        next_allowed_at = utcnow() + timedelta(seconds=retry_after_seconds)
    body = RejectionResponse(
        kind=kind.value,
        message=FAILURE_MESSAGES[kind],
        retry_after_seconds=retry_after_seconds,
        next_allowed_at=next_allowed_at,
    )
    headers = {"Retry-After": str(retry_after_seconds)} if retry_after_seconds else None
    return HTTPException(
        status_code=_status_for(kind),
        detail=body.model_dump(mode="json"),
        headers=headers,
    )


def _incomplete_decision(missing: str) -> HTTPException:
    logger.error("Admission decision is missing %s", missing)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Admission decision is incomplete",
    )


def _raise_if_rejected(decision: AdmissionDecision) -> None:
    if decision.accepted:
        return
    if decision.kind is None:
        raise _incomplete_decision("a failure kind")
    raise _rejection(decision.kind, decision.retry_after_seconds)


@router.get("/eligibility", response_model=EligibilityResponse)
def get_eligibility(
    service: AdmissionServiceDep,
    origin: ClientOriginDep,
    x_fingerprint: Annotated[str | None, Header()] = None,
) -> EligibilityResponse:
    """Report whether the caller may check in now."""
    remaining = service.seconds_until_eligible(origin, x_fingerprint)
    return EligibilityResponse(eligible=remaining == 0, seconds_until_eligible=remaining)


@router.post(
    "/preflight",
    response_model=PreflightResponse,
    dependencies=[RequestSizeLimit],
)
def preflight_check_in(
    service: AdmissionServiceDep,
    origin: ClientOriginDep,
    payload: Annotated[CheckInPayload | None, Body()] = None,
    x_fingerprint: Annotated[str | None, Header()] = None,
) -> PreflightResponse:
    """Check eligibility (and optionally content) and grant an admission token.

    The caller's daily window is not consumed until the check-in is submitted.
    """
    try:
        decision = service.preflight(origin, payload, fingerprint=x_fingerprint)
    except TokenIssuanceError as exc:
        raise _rejection(FailureKind.TOKEN_ISSUANCE_FAILED, TOKEN_RETRY_AFTER_SECONDS) from exc

    _raise_if_rejected(decision)
    if decision.token is None or decision.token_expires_in_seconds is None:
        raise _incomplete_decision("an admission token")
    return PreflightResponse(
        token=decision.token,
        expires_in_seconds=decision.token_expires_in_seconds,
    )


@router.post(
    "/",
    response_model=CheckInAccepted,
    status_code=status.HTTP_201_CREATED,
    dependencies=[RequestSizeLimit],
)
def submit_check_in(
    payload: CheckInPayload,
    service: AdmissionServiceDep,
    origin: ClientOriginDep,
    x_admission_token: Annotated[str | None, Header()] = None,
    x_fingerprint: Annotated[str | None, Header()] = None,
) -> CheckInAccepted:
    """Admit and record one anonymous check-in."""
    try:
        decision = service.submit(
            origin,
            payload,
            token=x_admission_token,
            fingerprint=x_fingerprint,
        )
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "kind": "persistence_failed",
                "message": "Failed to record check-in. Please try again.",
                "retry_after_seconds": PERSISTENCE_RETRY_AFTER_SECONDS,
            },
            headers={"Retry-After": str(PERSISTENCE_RETRY_AFTER_SECONDS)},
        ) from exc

    _raise_if_rejected(decision)
    stored = decision.payload
    if stored is None or decision.record_id is None:
        raise _incomplete_decision("the recorded check-in")
    next_allowed_in = decision.retry_after_seconds or 0
    return CheckInAccepted(
        id=decision.record_id,
        emotion=stored.emotion,
        intensity=stored.intensity,
        region=stored.region,
        next_allowed_in_seconds=next_allowed_in,
        next_allowed_at=utcnow() + timedelta(seconds=next_allowed_in),
    )
