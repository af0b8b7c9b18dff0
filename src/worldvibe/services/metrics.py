"""In-process counters for the admission pipeline."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock

from worldvibe.services.errors import FailureKind


@dataclass
class AdmissionMetrics:
    """Counters describing admission outcomes since process start."""

    attempts: int = 0
    accepted: int = 0
    preflights: int = 0
    tokens_issued: int = 0
    token_issuance_failures: int = 0
    limiter_fail_open: int = 0
    persistence_failures: int = 0
    rejections_by_kind: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    moderation_rejections_by_kind: dict[str, int] = field(
        default_factory=lambda: defaultdict(int)
    )
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def increment(self, counter: str, amount: int = 1) -> None:
        """Increment a named scalar counter."""
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def record_rejection(self, kind: FailureKind) -> None:
        """Count one rejection of the given kind."""
        with self._lock:
            self.rejections_by_kind[kind.value] += 1

    def record_moderation_rejection(self, kind: FailureKind) -> None:
        """Count one content-rule rejection of the given kind."""
        with self._lock:
            self.moderation_rejections_by_kind[kind.value] += 1

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-friendly copy of all counters."""
        with self._lock:
            return {
                "attempts": self.attempts,
                "accepted": self.accepted,
                "preflights": self.preflights,
                "tokens_issued": self.tokens_issued,
                "token_issuance_failures": self.token_issuance_failures,
                "limiter_fail_open": self.limiter_fail_open,
                "persistence_failures": self.persistence_failures,
                "rejections_by_kind": dict(self.rejections_by_kind),
                "moderation_rejections_by_kind": dict(self.moderation_rejections_by_kind),
            }

    def reset(self) -> None:
        """Zero every counter."""
        with self._lock:
            self.attempts = 0
            self.accepted = 0
            self.preflights = 0
            self.tokens_issued = 0
            self.token_issuance_failures = 0
            self.limiter_fail_open = 0
            self.persistence_failures = 0
            self.rejections_by_kind = defaultdict(int)
            self.moderation_rejections_by_kind = defaultdict(int)


_METRICS = AdmissionMetrics()


def get_admission_metrics() -> AdmissionMetrics:
    """Return the process-wide admission metrics."""
    return _METRICS
