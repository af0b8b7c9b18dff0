"""Admission limiter: at most one admitted check-in per identity per window."""

from __future__ import annotations

import logging
import time

from worldvibe.core.settings import Settings, settings as default_settings
from worldvibe.services.ephemeral_store import EphemeralStore
from worldvibe.services.errors import StoreUnavailableError
from worldvibe.services.metrics import AdmissionMetrics, get_admission_metrics

logger = logging.getLogger(__name__)


class AdmissionLimiter:
    """TTL-keyed gate over the ephemeral store.

    Every store failure fails open: the identity is reported as eligible and the
    degradation is logged and counted.
    """

    def __init__(
        self,
        store: EphemeralStore,
        config: Settings | None = None,
        metrics: AdmissionMetrics | None = None,
    ) -> None:
        config = config or default_settings
        self._store = store
        self._window = int(config.rate_limit_window_seconds)
        self._prefix = config.rate_limit_key_prefix
        self._metrics = metrics or get_admission_metrics()

    @property
    def window_seconds(self) -> int:
        return self._window

    def _key(self, identity_key: str) -> str:
        return f"{self._prefix}{identity_key}"

    def _fail_open(self, operation: str, exc: StoreUnavailableError) -> None:
        logger.warning("Limiter %s failed, allowing admission: %s", operation, exc)
        self._metrics.increment("limiter_fail_open")

    def seconds_until_eligible(self, identity_key: str) -> int:
        """Seconds until ``identity_key`` may be admitted again (0 means now)."""
        try:
            remaining = self._store.ttl(self._key(identity_key))
        except StoreUnavailableError as exc:
            self._fail_open("ttl", exc)
            return 0
        if remaining is None or remaining < 0:
            return 0
        return int(remaining)

    def mark_admitted(self, identity_key: str) -> None:
        """Start a fresh window for ``identity_key`` unconditionally."""
        try:
            self._store.set_with_ttl(
                self._key(identity_key), str(int(time.time() * 1000)), self._window
            )
        except StoreUnavailableError as exc:
            self._fail_open("mark", exc)

    def try_admit(self, identity_key: str) -> int:
        """Atomically claim the window for ``identity_key``.

        Returns:
            0 if this call claimed the window, otherwise the seconds remaining on
            the window held by an earlier admission.
        """
        key = self._key(identity_key)
        try:
            claimed = self._store.set_if_absent_with_ttl(
                key, str(int(time.time() * 1000)), self._window
            )
            if claimed:
                return 0
            remaining = self._store.ttl(key)
        except StoreUnavailableError as exc:
            self._fail_open("claim", exc)
            return 0
        # Key vanished between the two calls; the window is effectively held.
        if remaining is None or remaining <= 0:
            return 1
        return int(remaining)

    def release(self, identity_key: str) -> None:
        """Drop the window for ``identity_key``."""
        try:
            self._store.delete(self._key(identity_key))
        except StoreUnavailableError as exc:
            logger.warning("Limiter release failed: %s", exc)
