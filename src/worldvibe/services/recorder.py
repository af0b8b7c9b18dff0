"""Storage collaborator for admitted check-ins."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from worldvibe.db.time import utcnow
from worldvibe.models import CheckIn
from worldvibe.schemas.check_in import CheckInPayload
from worldvibe.services.content import parse_timestamp
from worldvibe.services.errors import PersistenceError

logger = logging.getLogger(__name__)


class CheckInRecorder(Protocol):
    """Persist a sanitized payload and return its record id."""

    def record(self, payload: CheckInPayload) -> str: ...


class SqlCheckInRecorder:
    """Write check-ins through a SQLAlchemy session factory."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def record(self, payload: CheckInPayload) -> str:
        """Insert one ``CheckIn`` row.

        Raises:
            PersistenceError: If the database rejects or cannot take the write.
        """
        record_id = uuid.uuid4().hex
        recorded_at = parse_timestamp(payload.timestamp) if payload.timestamp else utcnow()
        row = CheckIn(
            id=record_id,
            emotion=payload.emotion.value,
            intensity=payload.intensity,
            note=payload.note,
            region=payload.region,
            recorded_at=recorded_at,
            latitude=payload.coordinates.latitude if payload.coordinates else None,
            longitude=payload.coordinates.longitude if payload.coordinates else None,
        )
        session = self._session_factory()
        try:
            session.add(row)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Failed to record check-in", exc_info=True)
            raise PersistenceError("Check-in could not be recorded") from exc
        finally:
            session.close()
        return record_id
