"""Shared API dependencies for the admission endpoints."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from worldvibe.core.settings import settings
from worldvibe.db.session import SessionLocal
from worldvibe.services.admission import AdmissionService
from worldvibe.services.ephemeral_store import EphemeralStore, build_ephemeral_store
from worldvibe.services.recorder import CheckInRecorder, SqlCheckInRecorder


@lru_cache(maxsize=1)
def get_ephemeral_store() -> EphemeralStore:
    """Return the process-wide ephemeral store client."""
    return build_ephemeral_store(settings)


def get_check_in_recorder() -> CheckInRecorder:
    """Return the storage collaborator for admitted check-ins."""
    return SqlCheckInRecorder(SessionLocal)


StoreDep = Annotated[EphemeralStore, Depends(get_ephemeral_store)]
RecorderDep = Annotated[CheckInRecorder, Depends(get_check_in_recorder)]


def get_admission_service(store: StoreDep, recorder: RecorderDep) -> AdmissionService:
    """Build the admission pipeline for one request."""
    return AdmissionService.from_settings(store, recorder, settings)


def get_client_origin(request: Request) -> str | None:
    """Return the network origin of the caller.

    Only the socket peer, or the first hop of a configured trusted proxy
    header, is used. Body fields never feed the rate-limit key.
    """
    header = settings.trusted_proxy_header
    if header:
        forwarded = request.headers.get(header)
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    if request.client is None:
        return None
    return request.client.host


AdmissionServiceDep = Annotated[AdmissionService, Depends(get_admission_service)]
ClientOriginDep = Annotated[str | None, Depends(get_client_origin)]


async def enforce_request_size(request: Request) -> None:
    """Reject request bodies larger than ``MAX_REQUEST_BYTES`` with 413."""
    limit = settings.max_request_bytes
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit():
        size = int(declared)
    else:
        size = len(await request.body())
    if size > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={
                "kind": "request_too_large",
                "message": f"Request body must not exceed {limit} bytes.",
                "retry_after_seconds": None,
            },
        )


RequestSizeLimit = Depends(enforce_request_size)
