"""Admission orchestration for anonymous check-ins.

A submission walks ``START -> IDENTITY_RESOLVED -> LIMIT_CHECKED ->
CONTENT_VALIDATED -> TOKEN_RESOLVED`` and ends in ``ACCEPTED`` or ``REJECTED``.
Content is validated before the rate-limit window is claimed, so a rejected
note never costs the caller their daily slot. The window is claimed with an
atomic set-if-absent, so concurrent submissions from one identity admit
exactly one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from worldvibe.core.settings import Settings, settings as default_settings
from worldvibe.schemas.check_in import CheckInPayload
from worldvibe.services.content import ContentValidator, sanitize
from worldvibe.services.ephemeral_store import EphemeralStore
from worldvibe.services.errors import ContentValidationError, FailureKind, PersistenceError
from worldvibe.services.identity import IdentityResolver
from worldvibe.services.limiter import AdmissionLimiter
from worldvibe.services.metrics import AdmissionMetrics, get_admission_metrics
from worldvibe.services.recorder import CheckInRecorder
from worldvibe.services.tokens import TokenService

logger = logging.getLogger(__name__)


class AdmissionState(str, Enum):
    """States of a single admission decision."""

    START = "start"
    IDENTITY_RESOLVED = "identity_resolved"
    LIMIT_CHECKED = "limit_checked"
    CONTENT_VALIDATED = "content_validated"
    TOKEN_RESOLVED = "token_resolved"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class AdmissionDecision:
    """Result of one pass through the admission pipeline."""

    accepted: bool = False
    state: AdmissionState = AdmissionState.START
    kind: FailureKind | None = None
    retry_after_seconds: int | None = None
    token: str | None = None
    token_expires_in_seconds: int | None = None
    record_id: str | None = None
    payload: CheckInPayload | None = None
    trail: list[AdmissionState] = field(default_factory=lambda: [AdmissionState.START])

    def advance(self, state: AdmissionState) -> None:
        self.state = state
        self.trail.append(state)


class AdmissionService:
    """Compose identity, limiter, content rules and tokens into one decision."""

    def __init__(
        self,
        *,
        identity: IdentityResolver,
        limiter: AdmissionLimiter,
        tokens: TokenService,
        validator: ContentValidator,
        recorder: CheckInRecorder,
        config: Settings | None = None,
        metrics: AdmissionMetrics | None = None,
    ) -> None:
        config = config or default_settings
        self._identity = identity
        self._limiter = limiter
        self._tokens = tokens
        self._validator = validator
        self._recorder = recorder
        self._single_use_tokens = config.single_use_tokens
        self._require_token = config.require_admission_token
        self._coordinate_precision = config.coordinate_precision
        self._metrics = metrics or get_admission_metrics()

    @classmethod
    def from_settings(
        cls,
        store: EphemeralStore,
        recorder: CheckInRecorder,
        config: Settings | None = None,
        metrics: AdmissionMetrics | None = None,
    ) -> AdmissionService:
        """Build the standard pipeline over ``store`` and ``recorder``."""
        config = config or default_settings
        metrics = metrics or get_admission_metrics()
        return cls(
            identity=IdentityResolver(config),
            limiter=AdmissionLimiter(store, config, metrics),
            tokens=TokenService(store, config, metrics),
            validator=ContentValidator.from_settings(config, metrics),
            recorder=recorder,
            config=config,
            metrics=metrics,
        )

    @property
    def limiter(self) -> AdmissionLimiter:
        return self._limiter

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    def _reject(
        self,
        decision: AdmissionDecision,
        kind: FailureKind,
        retry_after_seconds: int | None = None,
    ) -> AdmissionDecision:
        decision.accepted = False
        decision.kind = kind
        decision.retry_after_seconds = retry_after_seconds
        decision.advance(AdmissionState.REJECTED)
        self._metrics.record_rejection(kind)
        return decision

    def _check_limit_and_content(
        self,
        decision: AdmissionDecision,
        identity_key: str,
        payload: CheckInPayload | None,
        now: datetime | None,
    ) -> bool:
        """Run the limit and content stages; False once ``decision`` is rejected."""
        remaining = self._limiter.seconds_until_eligible(identity_key)
        if remaining > 0:
            self._reject(decision, FailureKind.RATE_LIMITED, remaining)
            return False
        decision.advance(AdmissionState.LIMIT_CHECKED)

        if payload is not None:
            try:
                self._validator.validate(payload, now)
            except ContentValidationError as exc:
                self._reject(decision, exc.kind)
                return False
        decision.advance(AdmissionState.CONTENT_VALIDATED)
        return True

    def _redeem(self, token: str) -> bool:
        if self._single_use_tokens:
            return self._tokens.consume(token)
        return self._tokens.validate(token)

    def seconds_until_eligible(self, origin: str | None, fingerprint: str | None = None) -> int:
        """Seconds until the caller may check in again."""
        return self._limiter.seconds_until_eligible(self._identity.resolve(origin, fingerprint))

    def preflight(
        self,
        origin: str | None,
        payload: CheckInPayload | None = None,
        fingerprint: str | None = None,
        now: datetime | None = None,
    ) -> AdmissionDecision:
        """Grant an admission token without consuming the caller's window.

        Raises:
            TokenIssuanceError: If the token cannot be stored.
        """
        self._metrics.increment("preflights")
        decision = AdmissionDecision(payload=payload)
        identity_key = self._identity.resolve(origin, fingerprint)
        decision.advance(AdmissionState.IDENTITY_RESOLVED)

        if not self._check_limit_and_content(decision, identity_key, payload, now):
            return decision

        issued = self._tokens.issue(region=payload.region if payload else None)
        decision.token = issued.token
        decision.token_expires_in_seconds = issued.expires_in_seconds
        decision.advance(AdmissionState.TOKEN_RESOLVED)

        decision.accepted = True
        decision.advance(AdmissionState.ACCEPTED)
        return decision

    def submit(
        self,
        origin: str | None,
        payload: CheckInPayload,
        token: str | None = None,
        fingerprint: str | None = None,
        now: datetime | None = None,
    ) -> AdmissionDecision:
        """Admit and record one check-in.

        Raises:
            PersistenceError: If admission succeeded but storage failed.
        """
        self._metrics.increment("attempts")
        decision = AdmissionDecision(payload=payload)
        identity_key = self._identity.resolve(origin, fingerprint)
        decision.advance(AdmissionState.IDENTITY_RESOLVED)

        if not self._check_limit_and_content(decision, identity_key, payload, now):
            return decision

        if token is not None or self._require_token:
            if not token or not self._redeem(token):
                return self._reject(decision, FailureKind.INVALID_TOKEN)
            decision.token = token
        decision.advance(AdmissionState.TOKEN_RESOLVED)

        remaining = self._limiter.try_admit(identity_key)
        if remaining > 0:
            return self._reject(decision, FailureKind.RATE_LIMITED, remaining)

        sanitized = sanitize(payload, self._coordinate_precision)
        try:
            decision.record_id = self._recorder.record(sanitized)
        except PersistenceError:
            self._metrics.increment("persistence_failures")
            raise

        decision.payload = sanitized
        decision.accepted = True
        decision.retry_after_seconds = self._limiter.window_seconds
        decision.advance(AdmissionState.ACCEPTED)
        self._metrics.increment("accepted")
        logger.info(
            "Check-in admitted (emotion=%s, region=%s)",
            sanitized.emotion.value,
            sanitized.region or "-",
        )
        return decision
