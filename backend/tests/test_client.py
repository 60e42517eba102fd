import httpx
import pytest

from app.client import IncomeVerificationTimeout, JourneyClient


def _client(handler, sleeps=None):
    transport = httpx.MockTransport(handler)
    http = httpx.Client(base_url="http://journey.test", transport=transport)
    return JourneyClient(token="tok", client=http, sleep=(sleeps.append if sleeps is not None else lambda s: None))


def test_wait_for_income_result_returns_when_settled():
    statuses = iter(["pending", "pending", "verified"])
    seen_tokens = []
    sleeps = []

    def handler(request):
        seen_tokens.append(request.headers.get("journey-token"))
        return httpx.Response(200, json={"status": next(statuses), "platform": "uber", "current_step": "income"})

    with _client(handler, sleeps) as client:
        result = client.wait_for_income_result(interval=2.0, max_attempts=5)

    assert result["status"] == "verified"
    assert sleeps == [2.0, 2.0]
    assert seen_tokens == ["tok", "tok", "tok"]


def test_wait_for_income_result_times_out():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"status": "pending", "platform": "uber", "current_step": "income"})

    with _client(handler, sleeps) as client:
        with pytest.raises(IncomeVerificationTimeout) as excinfo:
            client.wait_for_income_result(interval=1.5, max_attempts=3)

    assert calls == ["/api/income/status"] * 3
    assert sleeps == [1.5, 1.5]
    assert excinfo.value.attempts == 3


def test_failed_status_also_settles():
    def handler(request):
        return httpx.Response(200, json={"status": "failed", "platform": "99", "current_step": "income"})

    with _client(handler) as client:
        assert client.wait_for_income_result(interval=0, max_attempts=2)["status"] == "failed"


def test_poll_failure_propagates_without_retry():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(503, json={"error": "upstream_unavailable"})

    with _client(handler, sleeps) as client:
        with pytest.raises(httpx.HTTPStatusError):
            client.wait_for_income_result(interval=1.0, max_attempts=5)

    assert calls == ["/api/income/status"]
    assert sleeps == []


def test_beacons_swallow_transport_errors():
    attempts = []

    def handler(request):
        attempts.append(request.url.path)
        raise httpx.ConnectError("offline", request=request)

    with _client(handler) as client:
        assert client.heartbeat() is False
        assert client.abandon("device") is False
        assert client.track("button_clicked", "device", button_id="next") is False

    # one attempt each, no retries
    assert attempts == ["/api/heartbeat", "/api/journey/abandon", "/api/journey/event"]


def test_beacon_payload():
    bodies = []

    def handler(request):
        bodies.append(request.read())
        return httpx.Response(200, json={"ok": True})

    with _client(handler) as client:
        assert client.track("button_clicked", "device", button_id="next") is True

    assert b'"token":"tok"' in bodies[0].replace(b" ", b"")
    assert b'"button_id":"next"' in bodies[0].replace(b" ", b"")


def test_validate_returns_invalid_bodies():
    def handler(request):
        return httpx.Response(404, json={"valid": False, "reason": "not_found"})

    with _client(handler) as client:
        assert client.validate() == {"valid": False, "reason": "not_found"}


def test_client_against_app(client, make_journey):
    journey = make_journey()
    with JourneyClient(token=journey.token, client=client) as journey_client:
        body = journey_client.validate(snapshot={"version": 1, "current_step": "otp"})
        assert body["valid"] is True
        assert body["reconciliation"]["outcome"] == "in_sync"
        assert journey_client.heartbeat() is True
