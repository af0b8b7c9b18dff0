"""Anonymous identity resolution for rate limiting."""

from __future__ import annotations

from worldvibe.core.settings import Settings, settings as default_settings
from worldvibe.utils.hash import sha256_hexdigest

# All requests without a usable origin share one bucket.
UNKNOWN_ORIGIN = "unknown-origin"


class IdentityResolver:
    """Derive an opaque rate-limit key from the network origin of a request.

    The key is a salted SHA-256 digest, so raw addresses never reach the store.
    With a generated salt, keys are stable for the process lifetime only.
    """

    def __init__(self, config: Settings | None = None) -> None:
        config = config or default_settings
        self._salt = config.identity_salt.get_secret_value()
        self._use_fingerprint = config.identity_use_fingerprint

    def resolve(self, origin: str | None, fingerprint: str | None = None) -> str:
        """Return the identity key for ``origin`` (and optionally a device fingerprint)."""
        origin = (origin or "").strip() or UNKNOWN_ORIGIN
        material = origin
        if self._use_fingerprint and fingerprint and fingerprint.strip():
            material = f"{origin}|{fingerprint.strip()}"
        return sha256_hexdigest(self._salt + material)
