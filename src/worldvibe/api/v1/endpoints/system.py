"""System and transparency endpoints for the WorldVibe API."""

from __future__ import annotations

from fastapi import APIRouter

from worldvibe.api.v1.dependencies import StoreDep
from worldvibe.core.settings import settings
from worldvibe.schemas.check_in import Emotion
from worldvibe.services.metrics import get_admission_metrics

router = APIRouter(prefix="/system", tags=["system", "transparency"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes salts, connection strings and moderation word lists; suitable for
    client-side hints and transparency UIs.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "admission": {
            "rate_limit_window_seconds": settings.rate_limit_window_seconds,
            "token_expiry_hours": settings.token_expiry_hours,
            "single_use_tokens": settings.single_use_tokens,
            "require_admission_token": settings.require_admission_token,
        },
        "content": {
            "emotions": [emotion.value for emotion in Emotion],
            "intensity_range": [1, 5],
            "note_max_length": settings.note_max_length,
            "region_pattern": settings.region_pattern,
            "timestamp_max_future_seconds": settings.timestamp_max_future_seconds,
            "timestamp_max_age_seconds": settings.timestamp_max_age_seconds,
        },
    }


@router.get("/metrics")
def get_metrics(store: StoreDep) -> dict[str, object]:
    """Expose admission counters and ephemeral store health."""
    store_health: dict[str, object] = {"reachable": store.ping()}
    breaker = getattr(store, "breaker", None)
    if breaker is not None:
        store_health["circuit"] = breaker.state.value
    return {
        "admission": get_admission_metrics().snapshot(),
        "ephemeral_store": store_health,
    }
