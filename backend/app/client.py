"""
Journey Client — httpx client of the public journey API for scripted flows.

Beacons (heartbeat, abandonment, events) are fire-and-forget: transport
errors are logged and swallowed, nothing is retried. Income verification
is awaited with a bounded poll loop that fails with IncomeVerificationTimeout.
"""
import time
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from app.config import get_settings
from app.utils.logger import get_logger

logger = get_logger("client")

SETTLED_INCOME_STATUSES = ("verified", "failed")


class IncomeVerificationTimeout(Exception):
    """The income widget outcome did not arrive within the poll ceiling."""

    def __init__(self, attempts: int, interval: float):
        self.attempts = attempts
        self.interval = interval
        super().__init__(f"Income verification still pending after {attempts} polls ({interval}s apart)")


class JourneyClient:

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token = token
        self._sleep = sleep
        self._http = client or httpx.Client(
            base_url=base_url,
            timeout=timeout or get_settings().HTTP_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "JourneyClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        return {"journey-token": self.token} if self.token else {}

    # ─── Journey ───

    def check_lead(self, cpf: str, device_model: Optional[str] = None) -> Dict[str, Any]:
        resp = self._http.post("/api/lead/check", json={"cpf": cpf, "device_model": device_model})
        resp.raise_for_status()
        data = resp.json()
        if data.get("token"):
            self.token = data["token"]
        return data

    def validate(self, snapshot: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Resume check. Returns the body for valid and invalid journeys alike."""
        body: Dict[str, Any] = {"token": self.token}
        if snapshot is not None:
            body["snapshot"] = snapshot
        resp = self._http.post("/api/journey/validate", json=body)
        if resp.status_code not in (200, 400, 404):
            resp.raise_for_status()
        return resp.json()

    def income_status(self) -> Dict[str, Any]:
        resp = self._http.get("/api/income/status", headers=self._headers())
        resp.raise_for_status()
        return resp.json()

    def wait_for_income_result(
        self,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Poll income status until it settles (verified or failed)."""
        settings = get_settings()
        interval = settings.INCOME_POLL_INTERVAL_SECONDS if interval is None else interval
        max_attempts = max_attempts or settings.INCOME_POLL_MAX_ATTEMPTS

        polling = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda status: status.get("status") not in SETTLED_INCOME_STATUSES),
            sleep=self._sleep,
        )
        try:
            return polling(self.income_status)
        except RetryError:
            logger.warning("Income verification timed out after %d polls", max_attempts)
            raise IncomeVerificationTimeout(max_attempts, interval)

    # ─── Beacons ───

    def _beacon(self, path: str, payload: Dict[str, Any]) -> bool:
        if not self.token:
            return False
        try:
            resp = self._http.post(path, json={"token": self.token, **payload})
            return resp.is_success and resp.json().get("ok", False)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Beacon %s dropped: %s", path, e)
            return False

    def heartbeat(self) -> bool:
        return self._beacon("/api/heartbeat", {})

    def abandon(self, step_name: str) -> bool:
        return self._beacon("/api/journey/abandon", {"step_name": step_name})

    def track(self, event_type: str, step_name: Optional[str] = None, **metadata: Any) -> bool:
        return self._beacon("/api/journey/event", {
            "event_type": event_type,
            "step_name": step_name,
            "metadata": metadata,
        })
