# tests/v1/test_check_ins.py
"""Tests for the check-in admission endpoints."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from worldvibe.api.v1.dependencies import (
    get_admission_service,
    get_check_in_recorder,
    get_ephemeral_store,
)
from worldvibe.core.settings import settings
from worldvibe.services.admission import AdmissionDecision

CHECK_INS = "/api/v1/check-ins/"
PREFLIGHT = "/api/v1/check-ins/preflight"
ELIGIBILITY = "/api/v1/check-ins/eligibility"

PAYLOAD = {
    "emotion": "Joy",
    "intensity": 4,
    "note": "Feeling great after a long walk",
    "region": "us-ca",
    "coordinates": {"latitude": 37.77493, "longitude": -122.41942},
}


@pytest.fixture()
def forwarded_origins(monkeypatch: pytest.MonkeyPatch) -> None:
    """Trust X-Forwarded-For so tests can act as several callers."""
    monkeypatch.setattr(settings, "trusted_proxy_header", "X-Forwarded-For")


def test_submit_check_in(client: TestClient) -> None:
    """An eligible caller with clean content gets 201 and the recorded fields."""
    r = client.post(CHECK_INS, json=PAYLOAD)
    assert r.status_code == status.HTTP_201_CREATED
    data = r.json()
    assert len(data["id"]) == 32
    assert data["emotion"] == "joy"
    assert data["intensity"] == 4
    assert data["region"] == "US-CA"
    assert data["next_allowed_in_seconds"] == settings.rate_limit_window_seconds


def test_second_check_in_is_rate_limited(client: TestClient) -> None:
    """A second submission in the window gets 429 with Retry-After."""
    assert client.post(CHECK_INS, json=PAYLOAD).status_code == status.HTTP_201_CREATED

    r = client.post(CHECK_INS, json=PAYLOAD)
    assert r.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    detail = r.json()["detail"]
    assert detail["kind"] == "rate_limited"
    assert 0 < detail["retry_after_seconds"] <= settings.rate_limit_window_seconds
    assert int(r.headers["Retry-After"]) == detail["retry_after_seconds"]


def test_content_rejection_does_not_use_up_the_day(client: TestClient) -> None:
    """A 400 for bad content leaves the caller free to submit again."""
    r = client.post(CHECK_INS, json={**PAYLOAD, "note": "what a shit day"})
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json()["detail"]["kind"] == "profanity"
    assert "Retry-After" not in r.headers

    assert client.post(CHECK_INS, json=PAYLOAD).status_code == status.HTTP_201_CREATED


@pytest.mark.parametrize(
    ("overrides", "kind"),
    [
        ({"note": "Call me at 555-123-4567"}, "pii"),
        ({"note": "sooooooo bored right now"}, "spam_pattern"),
        ({"timestamp": "next tuesday"}, "invalid_timestamp"),
        ({"region": "USA1"}, "invalid_region"),
        ({"coordinates": {"latitude": 0, "longitude": 0}}, "invalid_location"),
    ],
)
def test_content_failures_map_to_400(client: TestClient, overrides: dict, kind: str) -> None:
    r = client.post(CHECK_INS, json={**PAYLOAD, **overrides})
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json()["detail"]["kind"] == kind


@pytest.mark.parametrize(
    "body",
    [
        {**PAYLOAD, "emotion": "rage"},
        {**PAYLOAD, "intensity": 9},
        {**PAYLOAD, "note": "x" * 201},
        {**PAYLOAD, "coordinates": {"latitude": 95, "longitude": 0}},
        {"note": "missing emotion"},
    ],
)
def test_malformed_payloads_are_422(client: TestClient, body: dict) -> None:
    assert client.post(CHECK_INS, json=body).status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_preflight_then_submit_with_token(client: TestClient) -> None:
    """A pre-flight token is accepted once and the window stays open until submit."""
    r = client.post(PREFLIGHT, json=PAYLOAD)
    assert r.status_code == status.HTTP_200_OK
    grant = r.json()
    assert grant["expires_in_seconds"] == settings.token_expiry_hours * 3600
    assert client.get(ELIGIBILITY).json()["eligible"] is True

    r = client.post(CHECK_INS, json=PAYLOAD, headers={"X-Admission-Token": grant["token"]})
    assert r.status_code == status.HTTP_201_CREATED


def test_preflight_without_body(client: TestClient) -> None:
    r = client.post(PREFLIGHT)
    assert r.status_code == status.HTTP_200_OK
    assert "." in r.json()["token"]


def test_preflight_rejects_bad_content(client: TestClient) -> None:
    r = client.post(PREFLIGHT, json={**PAYLOAD, "region": "nowhere-land"})
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json()["detail"]["kind"] == "invalid_region"


@pytest.mark.usefixtures("forwarded_origins")
def test_token_cannot_be_replayed(client: TestClient) -> None:
    """A redeemed token is refused for any other caller."""
    token = client.post(PREFLIGHT, headers={"X-Forwarded-For": "203.0.113.7"}).json()["token"]

    r = client.post(
        CHECK_INS,
        json=PAYLOAD,
        headers={"X-Admission-Token": token, "X-Forwarded-For": "203.0.113.7"},
    )
    assert r.status_code == status.HTTP_201_CREATED

    r = client.post(
        CHECK_INS,
        json=PAYLOAD,
        headers={"X-Admission-Token": token, "X-Forwarded-For": "198.51.100.23, 10.0.0.1"},
    )
    assert r.status_code == status.HTTP_403_FORBIDDEN
    assert r.json()["detail"]["kind"] == "invalid_token"


@pytest.mark.usefixtures("forwarded_origins")
def test_forwarded_origins_are_limited_independently(client: TestClient) -> None:
    first = {"X-Forwarded-For": "203.0.113.7"}
    second = {"X-Forwarded-For": "198.51.100.23"}

    assert client.post(CHECK_INS, json=PAYLOAD, headers=first).status_code == 201
    assert client.post(CHECK_INS, json=PAYLOAD, headers=second).status_code == 201
    assert client.post(CHECK_INS, json=PAYLOAD, headers=first).status_code == 429


def test_bogus_token_is_forbidden(client: TestClient) -> None:
    r = client.post(CHECK_INS, json=PAYLOAD, headers={"X-Admission-Token": "deadbeef"})
    assert r.status_code == status.HTTP_403_FORBIDDEN
    assert client.get(ELIGIBILITY).json()["eligible"] is True


def test_eligibility(client: TestClient) -> None:
    r = client.get(ELIGIBILITY)
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"eligible": True, "seconds_until_eligible": 0}

    client.post(CHECK_INS, json=PAYLOAD)

    data = client.get(ELIGIBILITY).json()
    assert data["eligible"] is False
    assert 0 < data["seconds_until_eligible"] <= settings.rate_limit_window_seconds


def test_persistence_failure_is_503(client: TestClient, app, failing_recorder) -> None:
    app.dependency_overrides[get_check_in_recorder] = lambda: failing_recorder

    r = client.post(CHECK_INS, json=PAYLOAD)
    assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert r.json()["detail"]["kind"] == "persistence_failed"
    assert r.headers["Retry-After"] == "30"


def test_token_issuance_failure_is_503(client: TestClient, app, failing_store) -> None:
    app.dependency_overrides[get_ephemeral_store] = lambda: failing_store

    r = client.post(PREFLIGHT)
    assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert r.json()["detail"]["kind"] == "token_issuance_failed"
    assert r.headers["Retry-After"] == "5"


def test_store_outage_still_admits(client: TestClient, app, failing_store) -> None:
    """The limiter fails open when the ephemeral store is unreachable."""
    app.dependency_overrides[get_ephemeral_store] = lambda: failing_store

    assert client.post(CHECK_INS, json=PAYLOAD).status_code == status.HTTP_201_CREATED
    assert client.post(CHECK_INS, json=PAYLOAD).status_code == status.HTTP_201_CREATED


def test_accepted_and_rate_limited_responses_carry_next_allowed_at(client: TestClient) -> None:
    before = datetime.now(UTC)
    accepted = client.post(CHECK_INS, json=PAYLOAD).json()
    next_allowed_at = datetime.fromisoformat(accepted["next_allowed_at"])
    window = timedelta(seconds=settings.rate_limit_window_seconds)
    assert before + window - timedelta(seconds=5) <= next_allowed_at
    assert next_allowed_at <= datetime.now(UTC) + window + timedelta(seconds=5)

    detail = client.post(CHECK_INS, json=PAYLOAD).json()["detail"]
    assert detail["kind"] == "rate_limited"
    assert datetime.fromisoformat(detail["next_allowed_at"]) > before


def test_content_rejection_has_no_next_allowed_at(client: TestClient) -> None:
    r = client.post(CHECK_INS, json={**PAYLOAD, "note": "what a shit day"})
    assert r.json()["detail"]["next_allowed_at"] is None


@pytest.mark.parametrize("path", [CHECK_INS, PREFLIGHT])
def test_oversized_body_is_413(client: TestClient, path: str) -> None:
    body = {**PAYLOAD, "padding": "x" * settings.max_request_bytes}
    r = client.post(path, json=body)
    assert r.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    assert r.json()["detail"]["kind"] == "request_too_large"

    assert client.get(ELIGIBILITY).json()["eligible"] is True


def test_size_limit_comes_from_settings(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "max_request_bytes", 16)
    r = client.post(CHECK_INS, json=PAYLOAD)
    assert r.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class _IncompleteService:
    """Admission service that accepts without filling in the decision."""

    def preflight(self, *args, **kwargs) -> AdmissionDecision:
        return AdmissionDecision(accepted=True)

    def submit(self, *args, **kwargs) -> AdmissionDecision:
        return AdmissionDecision(accepted=True)


@pytest.mark.parametrize("path", [CHECK_INS, PREFLIGHT])
def test_incomplete_decision_is_500(client: TestClient, app, path: str) -> None:
    app.dependency_overrides[get_admission_service] = _IncompleteService
    try:
        r = client.post(path, json=PAYLOAD)
    finally:
        app.dependency_overrides.pop(get_admission_service, None)
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert r.json()["detail"] == "Admission decision is incomplete"


def test_rejection_without_kind_is_500(client: TestClient, app) -> None:
    class _KindlessService(_IncompleteService):
        def submit(self, *args, **kwargs) -> AdmissionDecision:
            return AdmissionDecision(accepted=False)

    app.dependency_overrides[get_admission_service] = _KindlessService
    try:
        r = client.post(CHECK_INS, json=PAYLOAD)
    finally:
        app.dependency_overrides.pop(get_admission_service, None)
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
