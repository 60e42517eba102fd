from datetime import timedelta

from conftest import TEST_CODE, auth

from app.models import JourneyStep
from app.models.otp import OTPCode
from app.services.notification_service import NotificationService
from app.utils.clock import utcnow


def _codes(db, journey):
    db.expire_all()
    return db.query(OTPCode).filter(OTPCode.journey_id == journey.id).order_by(OTPCode.id).all()


def _lapse_live_code(db, journey):
    for code in _codes(db, journey):
        if not code.used:
            code.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()


class TestSend:
    def test_sends_to_phone_on_record(self, client, db, make_journey, sent_otps, fixed_otp):
        journey = make_journey(otp_verified=False)

        resp = client.post("/api/otp/send", headers=auth(journey))

        assert resp.status_code == 200
        body = resp.json()
        assert body["alreadySent"] is False
        assert body["destination"] == "*****4321"
        assert sent_otps == [{"phone": "5511987654321", "code": TEST_CODE}]
        codes = _codes(db, journey)
        assert len(codes) == 1
        assert codes[0].code_hash != TEST_CODE

    def test_second_send_within_validity_is_already_sent(self, client, db, make_journey, sent_otps):
        journey = make_journey(otp_verified=False)

        client.post("/api/otp/send", headers=auth(journey))
        resp = client.post("/api/otp/send", headers=auth(journey))

        assert resp.status_code == 200
        assert resp.json()["alreadySent"] is True
        assert len(_codes(db, journey)) == 1
        assert len(sent_otps) == 1

    def test_lapsed_code_is_retired_before_issuing(self, client, db, make_journey):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))
        _lapse_live_code(db, journey)

        resp = client.post("/api/otp/send", headers=auth(journey))

        assert resp.json()["alreadySent"] is False
        codes = _codes(db, journey)
        assert [c.used for c in codes] == [True, False]

    def test_hourly_send_limit(self, client, db, make_journey):
        journey = make_journey(otp_verified=False)
        for _ in range(3):
            assert client.post("/api/otp/send", headers=auth(journey)).status_code == 200
            _lapse_live_code(db, journey)

        resp = client.post("/api/otp/send", headers=auth(journey))

        assert resp.status_code == 429
        body = resp.json()
        assert body["error"] == "rate_limited"
        assert body["reason"] == "otp_send_limit"
        assert int(resp.headers["Retry-After"]) > 0
        assert len(_codes(db, journey)) == 3

    def test_delivery_failure_still_issues_code(self, client, db, make_journey, monkeypatch):
        monkeypatch.setattr(
            NotificationService, "send_otp",
            staticmethod(lambda phone, code: {"success": False, "channel": "whatsapp", "error": "down"}),
        )
        journey = make_journey(otp_verified=False)

        resp = client.post("/api/otp/send", headers=auth(journey))

        assert resp.status_code == 200
        assert len(_codes(db, journey)) == 1

    def test_requires_token(self, client):
        resp = client.post("/api/otp/send")
        assert resp.status_code == 400
        assert resp.json()["reason"] == "no_token"


class TestVerify:
    def test_wrong_code_counts_attempt_and_keeps_step(self, client, db, make_journey, fixed_otp):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))

        resp = client.post("/api/otp/verify", json={"code": "000000"}, headers=auth(journey))

        assert resp.status_code == 400
        assert resp.json()["reason"] == "invalid_code"
        assert resp.json()["details"]["attempts_remaining"] == 2
        assert _codes(db, journey)[0].attempts == 1
        db.refresh(journey)
        assert journey.current_step == JourneyStep.OTP.value

    def test_too_many_attempts_even_with_right_code(self, client, db, make_journey, fixed_otp):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))
        for _ in range(3):
            client.post("/api/otp/verify", json={"code": "000000"}, headers=auth(journey))

        resp = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))

        assert resp.status_code == 429
        assert resp.json()["reason"] == "too_many_attempts"
        db.refresh(journey)
        assert journey.otp_verified_at is None

    def test_exhausted_code_can_be_replaced(self, client, db, make_journey, fixed_otp):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))
        for _ in range(3):
            client.post("/api/otp/verify", json={"code": "000000"}, headers=auth(journey))

        resp = client.post("/api/otp/send", headers=auth(journey))

        assert resp.json()["alreadySent"] is False
        assert client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey)).status_code == 200

    def test_success_advances_to_device(self, client, db, make_journey, fixed_otp):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))

        resp = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))

        assert resp.status_code == 200
        assert resp.json()["already_verified"] is False
        assert resp.json()["current_step"] == "device"
        db.refresh(journey)
        assert journey.otp_verified_at is not None
        assert _codes(db, journey)[0].used is True

    def test_duplicate_correct_submission_is_idempotent(self, client, db, make_journey, fixed_otp):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))

        first = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))
        second = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))

        assert first.json()["already_verified"] is False
        assert second.status_code == 200
        assert second.json()["already_verified"] is True
        assert second.json()["current_step"] == "device"
        db.refresh(journey)
        assert journey.current_step == "device"

    def test_reverification_later_keeps_step(self, client, db, make_journey, fixed_otp):
        journey = make_journey(step=JourneyStep.OFFER, otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))

        resp = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))

        assert resp.json()["current_step"] == "offer"
        db.refresh(journey)
        assert journey.otp_verified_at is not None

    def test_expired_code(self, client, db, make_journey, fixed_otp):
        journey = make_journey(otp_verified=False)
        client.post("/api/otp/send", headers=auth(journey))
        _lapse_live_code(db, journey)

        resp = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))

        assert resp.status_code == 410
        assert resp.json()["reason"] == "expired"

    def test_no_code_requested(self, client, make_journey):
        journey = make_journey(otp_verified=False)
        resp = client.post("/api/otp/verify", json={"code": TEST_CODE}, headers=auth(journey))
        assert resp.status_code == 404
        assert resp.json()["reason"] == "not_found"
