from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from safety_audit.connectors.datastore import create_datastore
from safety_audit.connectors.firebase_connector import FirebaseConnector
from safety_audit.exceptions import PersistenceUnavailable
from safety_audit.models import AuditOutcome, AuditResult, ReportFilter, VehicleRecord
from safety_audit.utils.config_loader import AppConfig

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class _FakeTransport:
    def __init__(self, responses: Dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.responses = responses or {}
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"operation": operation, "method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.responses.get(operation)


def _connector(monkeypatch: pytest.MonkeyPatch, transport: _FakeTransport) -> FirebaseConnector:
    connector = FirebaseConnector("https://fleet.example.com/", auth_token="secret")
    monkeypatch.setattr(connector, "_request_with_retry", transport)
    return connector


def _outcome(plate: str, result: AuditResult) -> Dict[str, Any]:
    return AuditOutcome(
        plate=plate,
        vehicle_name_snapshot="",
        timestamp=T0,
        result=result,
        auditor_identity="a",
        problem_description="brakes" if result is AuditResult.BLOCKED else None,
        qr_payload="qr" if result is AuditResult.PASS else None,
    ).to_dict()


@pytest.mark.asyncio
async def test_save_vehicles_replaces_the_node(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = _FakeTransport()
    connector = _connector(monkeypatch, transport)

    await connector.save_vehicles([VehicleRecord(plate="A1"), VehicleRecord(plate="B2")])

    call = transport.calls[0]
    assert call["method"] == "PUT"
    assert call["url"] == "https://fleet.example.com/vehicles.json"
    assert call["params"] == {"auth": "secret"}
    assert [item["plate"] for item in call["json"]] == ["A1", "B2"]


@pytest.mark.asyncio
async def test_load_vehicles_accepts_list_dict_and_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    as_list = _FakeTransport({"loadVehicles": [{"plate": "A1"}, None, {"plate": "B2"}]})
    as_dict = _FakeTransport({"loadVehicles": {"k2": {"plate": "B2"}, "k1": {"plate": "A1"}}})
    empty = _FakeTransport({"loadVehicles": None})

    assert [r.plate for r in await _connector(monkeypatch, as_list).load_vehicles()] == ["A1", "B2"]
    assert [r.plate for r in await _connector(monkeypatch, as_dict).load_vehicles()] == ["A1", "B2"]
    assert await _connector(monkeypatch, empty).load_vehicles() == []


@pytest.mark.asyncio
async def test_outcomes_are_pushed_and_filtered(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = _FakeTransport({
        "loadOutcomes": {
            "-Nb1": _outcome("A1", AuditResult.PASS),
            "-Nb2": _outcome("B2", AuditResult.BLOCKED),
        }
    })
    connector = _connector(monkeypatch, transport)

    outcome = AuditOutcome.from_dict(_outcome("C3", AuditResult.PASS))
    await connector.append_outcome(outcome)
    blocked = await connector.load_outcomes(ReportFilter.BLOCKED_ONLY)

    assert transport.calls[0]["method"] == "POST"
    assert transport.calls[0]["url"].endswith("/outcomes.json")
    assert transport.calls[0]["json"]["plate"] == "C3"
    assert [o.plate for o in blocked] == ["B2"]


@pytest.mark.asyncio
async def test_transport_failure_surfaces_as_persistence_error(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = _FakeTransport(error=PersistenceUnavailable("saveVehicles", "server error 503"))
    connector = _connector(monkeypatch, transport)

    with pytest.raises(PersistenceUnavailable) as exc_info:
        await connector.save_vehicles([])

    assert exc_info.value.reason == "server error 503"
    assert await connector.test_connection() is False


def test_factory_builds_firebase_connector() -> None:
    config = AppConfig(
        datastore={"backend": "firebase", "database_url": "https://fleet.example.com/", "auth_token": "t"},
        retry={"max_attempts": 5},
    )

    connector = create_datastore(config)

    assert isinstance(connector, FirebaseConnector)
    assert connector.base_url == "https://fleet.example.com"
    assert connector.max_retries == 5


@pytest.mark.asyncio
async def test_transient_failures_are_retried_then_given_up(monkeypatch: pytest.MonkeyPatch) -> None:
    from safety_audit.connectors import base_connector

    sleeps: List[float] = []
    outcomes: List[Any] = [
        base_connector._RetryableResponse("HTTP 503"),
        base_connector._RetryableResponse("HTTP 429", wait=7),
        [{"plate": "A1"}],
    ]

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def fake_attempt(operation: str, method: str, url: str, **kwargs: Any) -> Any:
        result = outcomes.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def no_session() -> None:
        return None

    connector = FirebaseConnector("https://fleet.example.com", max_retries=3, initial_delay=1, backoff_multiplier=2)
    monkeypatch.setattr(base_connector.asyncio, "sleep", fake_sleep)
    monkeypatch.setattr(connector, "_attempt", fake_attempt)
    monkeypatch.setattr(connector, "_create_session", no_session)

    records = await connector.load_vehicles()

    assert [r.plate for r in records] == ["A1"]
    assert sleeps == [1, 7]
    assert connector.get_stats()["retries"] == 2

    outcomes.extend([base_connector._RetryableResponse("HTTP 503")] * 3)
    with pytest.raises(PersistenceUnavailable) as exc_info:
        await connector.save_vehicles([])
    assert exc_info.value.reason == "HTTP 503"
    assert exc_info.value.operation == "saveVehicles"


class _HtmlResponse:
    status = 200
    headers: Dict[str, str] = {}

    async def json(self, content_type: Any = None) -> Any:
        raise ValueError("Expecting value: line 1 column 1 (char 0)")

    async def __aenter__(self) -> "_HtmlResponse":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _HtmlSession:
    closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _HtmlResponse:
        return _HtmlResponse()


@pytest.mark.asyncio
async def test_non_json_body_surfaces_as_persistence_error(monkeypatch: pytest.MonkeyPatch) -> None:
    async def no_session() -> None:
        return None

    connector = FirebaseConnector("https://fleet.example.com")
    connector._session = _HtmlSession()
    connector._semaphore = asyncio.Semaphore(1)
    monkeypatch.setattr(connector, "_create_session", no_session)

    with pytest.raises(PersistenceUnavailable) as exc_info:
        await connector.load_vehicles()

    assert exc_info.value.reason == "invalid JSON response"
    assert connector.get_stats()["requests_failed"] == 1
    assert connector.get_stats()["requests_successful"] == 0
