"""Ephemeral admission tokens.

A token is ``<random hex>.<context hash>`` where the context hash is the SHA-256
hex of the issuing region and time plus a server salt. The full token string is
stored as a key with a TTL; validation checks format and then existence only.
``matches_context`` can recompute the binding but the admission path does not
call it.
"""

from __future__ import annotations

import hmac
import json
import logging
import re
import time
from dataclasses import dataclass

from worldvibe.core.settings import Settings, settings as default_settings
from worldvibe.services.ephemeral_store import EphemeralStore
from worldvibe.services.errors import StoreUnavailableError, TokenIssuanceError
from worldvibe.services.metrics import AdmissionMetrics, get_admission_metrics
from worldvibe.utils.hash import SHA256_HEX_LEN, random_hex, sha256_hexdigest

logger = logging.getLogger(__name__)

TOKEN_SEPARATOR = "."


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted token and the facts it was bound to."""

    token: str
    issued_at_ms: int
    expires_in_seconds: int


class TokenService:
    """Issue, validate and consume single-context admission tokens."""

    def __init__(
        self,
        store: EphemeralStore,
        config: Settings | None = None,
        metrics: AdmissionMetrics | None = None,
    ) -> None:
        config = config or default_settings
        self._store = store
        self._salt = config.token_salt.get_secret_value()
        self._random_bytes = int(config.token_random_bytes)
        self._default_expiry_hours = int(config.token_expiry_hours)
        self._prefix = config.token_key_prefix
        self._metrics = metrics or get_admission_metrics()
        self._format = re.compile(
            rf"[0-9a-f]{{{self._random_bytes * 2}}}\.[0-9a-f]{{{SHA256_HEX_LEN}}}"
        )

    def _key(self, token: str) -> str:
        return f"{self._prefix}{token}"

    def context_hash(self, region: str | None, issued_at_ms: int) -> str:
        """Return the salted context hash for ``region`` at ``issued_at_ms``."""
        context = json.dumps(
            {"region": region or "", "timestamp": str(int(issued_at_ms))},
            separators=(",", ":"),
        )
        return sha256_hexdigest(context + self._salt)

    def is_well_formed(self, token: str) -> bool:
        """Return True if ``token`` has the exact ``{random}.{sha256}`` shape."""
        if not isinstance(token, str):
            return False
        parts = token.split(TOKEN_SEPARATOR)
        if len(parts) != 2:
            return False
        return self._format.fullmatch(token) is not None

    def issue(self, region: str | None = None, expiry_hours: int | None = None) -> IssuedToken:
        """Mint a token bound to ``region`` and store it with a TTL.

        Raises:
            TokenIssuanceError: If the store write fails. The caller may retry.
        """
        issued_at_ms = int(time.time() * 1000)
        token = TOKEN_SEPARATOR.join(
            (random_hex(self._random_bytes), self.context_hash(region, issued_at_ms))
        )
        ttl_seconds = int(expiry_hours or self._default_expiry_hours) * 3600
        try:
            self._store.set_with_ttl(self._key(token), "1", ttl_seconds)
        except StoreUnavailableError as exc:
            logger.error("Token issuance failed", exc_info=True)
            self._metrics.increment("token_issuance_failures")
            raise TokenIssuanceError("Admission token could not be stored") from exc

        self._metrics.increment("tokens_issued")
        return IssuedToken(token=token, issued_at_ms=issued_at_ms, expires_in_seconds=ttl_seconds)

    def validate(self, token: str) -> bool:
        """Return True if ``token`` is well formed and still present in the store.

        Does not consume the token.
        """
        if not self.is_well_formed(token):
            return False
        try:
            return self._store.get(self._key(token)) is not None
        except StoreUnavailableError:
            logger.warning("Token validation could not reach the store", exc_info=True)
            return False

    def consume(self, token: str) -> bool:
        """Atomically check and delete ``token``; True only for the first caller."""
        if not self.is_well_formed(token):
            return False
        try:
            return self._store.get_and_delete(self._key(token)) is not None
        except StoreUnavailableError:
            logger.warning("Token consumption could not reach the store", exc_info=True)
            return False

    def matches_context(self, token: str, region: str | None, issued_at_ms: int) -> bool:
        """Return True if ``token`` was minted for ``region`` at ``issued_at_ms``."""
        if not self.is_well_formed(token):
            return False
        _, claimed = token.split(TOKEN_SEPARATOR)
        return hmac.compare_digest(claimed, self.context_hash(region, issued_at_ms))
