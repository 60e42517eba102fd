from datetime import timedelta

from conftest import auth

from app.models import JourneyStep
from app.utils.clock import utcnow


def _validate(client, journey, model, vendor=None):
    return client.post("/api/device/validate", json={"model": model, "vendor": vendor}, headers=auth(journey))


class TestEligibility:
    def test_pattern_match_is_eligible(self, client, db, make_journey, allow_device):
        allow_device(r"SM-A5\d{2}[A-Z]?", description="Galaxy A54", approved_amount=1800)
        journey = make_journey(step=JourneyStep.DEVICE)

        resp = _validate(client, journey, "SM-A546E", "Samsung")

        assert resp.status_code == 200
        body = resp.json()
        assert body["eligible"] is True
        assert body["approved_amount"] == 1800
        assert body["commercial_name"] == "Galaxy A54"
        assert body["current_step"] == "income"
        db.refresh(journey)
        assert journey.device_eligible is True
        assert journey.device_checked_at is not None

    def test_match_is_case_insensitive_and_uses_default_amount(self, client, make_journey, allow_device):
        allow_device(r"moto\s*g\s*\d{2}", description="Moto G")
        journey = make_journey(step=JourneyStep.DEVICE)

        body = _validate(client, journey, "MOTO G54 5G").json()

        assert body["eligible"] is True
        assert body["approved_amount"] == 1500

    def test_rejection_counts_attempts_and_keeps_step(self, client, db, make_journey, allow_device):
        allow_device(r"SM-A5\d{2}[A-Z]?")
        journey = make_journey(step=JourneyStep.DEVICE)

        first = _validate(client, journey, "SM-J260M").json()
        again = _validate(client, journey, "SM-J260M").json()
        other = _validate(client, journey, "RMX1234").json()

        assert [first["eligible"], again["eligible"], other["eligible"]] == [False, False, False]
        assert [first["attempts"], again["attempts"], other["attempts"]] == [1, 2, 3]
        db.refresh(journey)
        assert journey.current_step == "device"
        assert journey.status == "in_progress"

    def test_approval_after_rejections_resets_attempts(self, client, db, make_journey, allow_device):
        allow_device(r"SM-A5\d{2}[A-Z]?")
        journey = make_journey(step=JourneyStep.DEVICE)
        _validate(client, journey, "SM-J260M")
        _validate(client, journey, "SM-J260M")

        body = _validate(client, journey, "SM-A546E").json()

        assert body["eligible"] is True
        assert body["attempts"] == 0
        db.refresh(journey)
        assert journey.device_attempts == 0
        assert journey.current_step == "income"

    def test_approval_is_sticky(self, client, make_journey, allow_device):
        allow_device(r"SM-A5\d{2}[A-Z]?")
        journey = make_journey(step=JourneyStep.DEVICE)
        _validate(client, journey, "SM-A546E")

        body = _validate(client, journey, "SM-J260M").json()

        assert body["eligible"] is True
        assert body["already_checked"] is True
        assert body["model"] == "SM-A546E"

    def test_malformed_pattern_is_skipped(self, client, make_journey, allow_device):
        allow_device(r"SM-A5(\d{2}", description="broken")
        allow_device(r"SM-A5\d{2}", description="Galaxy A5x")
        journey = make_journey(step=JourneyStep.DEVICE)

        body = _validate(client, journey, "SM-A546E").json()

        assert body["eligible"] is True
        assert body["commercial_name"] == "Galaxy A5x"

    def test_inactive_rows_are_ignored(self, client, make_journey, allow_device):
        allow_device(r"SM-A5\d{2}", active=False)
        journey = make_journey(step=JourneyStep.DEVICE)

        assert _validate(client, journey, "SM-A546E").json()["eligible"] is False

    def test_wrong_step(self, client, make_journey, allow_device):
        journey = make_journey(step=JourneyStep.OTP)

        resp = _validate(client, journey, "SM-A546E")

        assert resp.status_code == 409
        assert resp.json()["details"]["current_step"] == "otp"

    def test_lapsed_otp_sends_back_to_otp(self, client, db, make_journey, allow_device):
        allow_device(r"SM-A5\d{2}")
        journey = make_journey(step=JourneyStep.DEVICE, otp_verified=False)
        journey.otp_verified_at = utcnow() - timedelta(minutes=21)
        db.commit()

        resp = _validate(client, journey, "SM-A546E")

        assert resp.status_code == 410
        assert resp.json()["reason"] == "otp_expired"
        assert resp.json()["details"]["redirect_step"] == "otp"
        db.refresh(journey)
        assert journey.current_step == "device"


class TestAllowlistAdmin:
    def test_crud(self, client):
        created = client.post("/api/admin/devices", json={
            "brand": "Samsung", "model_pattern": r"SM-S9\d{2}", "description": "Galaxy S", "approved_amount": 2500,
        })
        assert created.status_code == 201
        device_id = created.json()["id"]

        updated = client.patch(f"/api/admin/devices/{device_id}", json={"description": "Galaxy S2x"})
        assert updated.json()["description"] == "Galaxy S2x"

        toggled = client.post(f"/api/admin/devices/{device_id}/toggle")
        assert toggled.json()["active"] is False
        assert client.get("/api/admin/devices", params={"active": True}).json() == []
        assert len(client.get("/api/admin/devices", params={"active": False}).json()) == 1

        assert client.delete(f"/api/admin/devices/{device_id}").status_code == 204
        assert client.get("/api/admin/devices").json() == []

    def test_invalid_pattern_rejected(self, client):
        resp = client.post("/api/admin/devices", json={"brand": "X", "model_pattern": "SM-(A"})
        assert resp.status_code == 400
        assert resp.json()["reason"] == "invalid_pattern"

        existing = client.post("/api/admin/devices", json={"brand": "X", "model_pattern": "SM-A"}).json()
        resp = client.patch(f"/api/admin/devices/{existing['id']}", json={"model_pattern": "[unclosed"})
        assert resp.status_code == 400

    def test_missing_entry(self, client):
        assert client.post("/api/admin/devices/999/toggle").status_code == 404

    def test_seed_defaults_is_idempotent(self, db):
        from app.services.device_service import DEFAULT_ALLOWLIST, DeviceService

        assert DeviceService.seed_defaults(db) == len(DEFAULT_ALLOWLIST)
        assert DeviceService.seed_defaults(db) == 0
        assert DeviceService.check_eligibility(db, "SM-A546E")["eligible"] is True
