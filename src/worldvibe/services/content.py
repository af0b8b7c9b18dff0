"""Content validation for inbound check-ins.

Each rule is a pure predicate over the payload (and the current time where it
matters) returning the failure kind it detects or ``None``. The validator runs
rules in order and stops at the first failure.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from worldvibe.core.settings import Settings, settings as default_settings
from worldvibe.schemas.check_in import CheckInPayload, Coordinates
from worldvibe.services.errors import ContentValidationError, FailureKind
from worldvibe.services.metrics import AdmissionMetrics, get_admission_metrics

logger = logging.getLogger(__name__)

NULL_ISLAND_TOLERANCE = 0.0001
REPEATED_CHAR_RUN = 5
REPEATED_WORD_COUNT = 4

_REPEATED_CHARS = re.compile(r"(.)\1{%d,}" % (REPEATED_CHAR_RUN - 1), re.DOTALL)
_WORDS = re.compile(r"\w+")
_WHITESPACE = re.compile(r"\s+")

CoordinateBox = tuple[float, float, float, float]


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of running the rule pipeline once."""

    accepted: bool
    failure_reason: FailureKind | None = None


class Rule(Protocol):
    """A single independent content check."""

    kind: FailureKind

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None: ...


class ProfanityRule:
    """Reject notes containing a banned word (whole word, any case)."""

    kind = FailureKind.PROFANITY

    def __init__(self, words: Iterable[str]) -> None:
        words = [w.strip() for w in words if w and w.strip()]
        self._pattern = (
            re.compile(r"\b(?:%s)\b" % "|".join(map(re.escape, words)), re.IGNORECASE)
            if words
            else None
        )

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None:
        if not payload.note or self._pattern is None:
            return None
        return self.kind if self._pattern.search(payload.note) else None


class PiiRule:
    """Reject notes that look like they carry contact or identity details."""

    kind = FailureKind.PII

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = [re.compile(p) for p in patterns]

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None:
        if not payload.note:
            return None
        if any(p.search(payload.note) for p in self._patterns):
            return self.kind
        return None


class SpamRule:
    """Reject longer notes that shout, stretch characters or repeat words."""

    kind = FailureKind.SPAM_PATTERN

    def __init__(self, min_length: int) -> None:
        self._min_length = min_length

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None:
        note = payload.note
        if not note or len(note) <= self._min_length:
            return None
        if note.isupper() or _REPEATED_CHARS.search(note):
            return self.kind
        counts = Counter(word.lower() for word in _WORDS.findall(note))
        if counts and counts.most_common(1)[0][1] >= REPEATED_WORD_COUNT:
            return self.kind
        return None


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive values are taken as UTC. Raises ``ValueError`` when unparseable or
    when the UTC equivalent falls outside the representable years.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError as exc:
        raise ValueError(f"timestamp out of range: {value!r}") from exc


class TimestampRule:
    """Reject timestamps that cannot be parsed or fall outside the skew window."""

    kind = FailureKind.INVALID_TIMESTAMP

    def __init__(self, max_future_seconds: int, max_age_seconds: int) -> None:
        self._max_future = timedelta(seconds=max_future_seconds)
        self._max_age = timedelta(seconds=max_age_seconds)

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None:
        if not payload.timestamp:
            return None
        try:
            observed = parse_timestamp(payload.timestamp)
        except ValueError:
            return self.kind
        if observed > now + self._max_future or observed < now - self._max_age:
            return self.kind
        return None


class RegionRule:
    """Reject region codes that are not ``CC``, ``CC-SUB`` or ``GLOBAL``."""

    kind = FailureKind.INVALID_REGION

    def __init__(self, pattern: str) -> None:
        self._pattern = re.compile(pattern, re.IGNORECASE)

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None:
        if not payload.region:
            return None
        return None if self._pattern.fullmatch(payload.region) else self.kind


def _in_box(point: Coordinates, box: CoordinateBox) -> bool:
    min_lat, max_lat, min_lon, max_lon = box
    if not min_lat < point.latitude < max_lat:
        return False
    if min_lon <= max_lon:
        return min_lon < point.longitude < max_lon
    # Box wraps the antimeridian.
    return point.longitude > min_lon or point.longitude < max_lon


class CoordinateRule:
    """Reject null island, banned ocean boxes and polar latitudes."""

    kind = FailureKind.INVALID_LOCATION

    def __init__(
        self,
        boxes: Sequence[CoordinateBox],
        min_latitude: float,
        max_latitude: float,
    ) -> None:
        self._boxes = [tuple(float(v) for v in box) for box in boxes]
        self._min_latitude = min_latitude
        self._max_latitude = max_latitude

    def evaluate(self, payload: CheckInPayload, now: datetime) -> FailureKind | None:
        point = payload.coordinates
        if point is None:
            return None
        if (
            abs(point.latitude) < NULL_ISLAND_TOLERANCE
            and abs(point.longitude) < NULL_ISLAND_TOLERANCE
        ):
            return self.kind
        if any(_in_box(point, box) for box in self._boxes):  # type: ignore[arg-type]
            return self.kind
        if point.latitude < self._min_latitude or point.latitude > self._max_latitude:
            return self.kind
        return None


def default_rules(config: Settings | None = None) -> list[Rule]:
    """Build the standard rule pipeline in evaluation order."""
    config = config or default_settings
    return [
        ProfanityRule(config.banned_words),
        PiiRule(config.pii_patterns),
        SpamRule(config.spam_min_length),
        TimestampRule(config.timestamp_max_future_seconds, config.timestamp_max_age_seconds),
        RegionRule(config.region_pattern),
        CoordinateRule(
            config.banned_coordinate_boxes,
            config.min_latitude,
            config.max_latitude,
        ),
    ]


class ContentValidator:
    """Run content rules in order, stopping at the first failure."""

    def __init__(
        self,
        rules: Sequence[Rule] | None = None,
        metrics: AdmissionMetrics | None = None,
    ) -> None:
        self._rules = list(rules) if rules is not None else default_rules()
        self._metrics = metrics or get_admission_metrics()

    @classmethod
    def from_settings(
        cls, config: Settings | None = None, metrics: AdmissionMetrics | None = None
    ) -> ContentValidator:
        return cls(default_rules(config), metrics=metrics)

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    def first_failure(self, payload: CheckInPayload, now: datetime | None = None) -> FailureKind | None:
        """Return the first failing kind without side effects."""
        now = now or datetime.now(UTC)
        for rule in self._rules:
            kind = rule.evaluate(payload, now)
            if kind is not None:
                return kind
        return None

    def verdict(self, payload: CheckInPayload, now: datetime | None = None) -> ValidationVerdict:
        kind = self.first_failure(payload, now)
        return ValidationVerdict(accepted=kind is None, failure_reason=kind)

    def validate(self, payload: CheckInPayload, now: datetime | None = None) -> None:
        """Raise ``ContentValidationError`` on the first violated rule."""
        kind = self.first_failure(payload, now)
        if kind is None:
            return
        self._metrics.record_moderation_rejection(kind)
        logger.debug("Check-in rejected by content rule: %s", kind.value)
        raise ContentValidationError(kind)


def sanitize(payload: CheckInPayload, coordinate_precision: int | None = None) -> CheckInPayload:
    """Return a storage-ready copy of an already validated payload."""
    precision = (
        default_settings.coordinate_precision
        if coordinate_precision is None
        else coordinate_precision
    )
    note = _WHITESPACE.sub(" ", payload.note).strip() if payload.note else None
    region = payload.region.strip().upper() if payload.region else None
    timestamp = (
        parse_timestamp(payload.timestamp).isoformat() if payload.timestamp else None
    )
    coordinates = (
        Coordinates(
            latitude=round(payload.coordinates.latitude, precision),
            longitude=round(payload.coordinates.longitude, precision),
        )
        if payload.coordinates
        else None
    )
    return payload.model_copy(
        update={
            "note": note or None,
            "region": region or None,
            "timestamp": timestamp,
            "coordinates": coordinates,
        }
    )
