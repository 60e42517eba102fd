from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from conftest import VALID_IMEI, auth

from app.models import JourneyStep
from app.services.credit_service import calculate_offer
from app.utils.clock import utcnow


class TestIncome:
    def test_start_returns_widget_url(self, client, db, make_journey):
        journey = make_journey(step=JourneyStep.INCOME, device_eligible=True)

        resp = client.post("/api/income/start", json={"platform": "uber"}, headers=auth(journey))

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "pending"
        query = parse_qs(urlparse(body["widget_url"]).query)
        assert query["platforms"] == ["uber"]
        assert query["external_id"] == [journey.id]
        assert query["countries"] == ["br"]
        db.refresh(journey)
        assert journey.income_platform == "uber"

    def test_unsupported_platform(self, client, make_journey):
        journey = make_journey(step=JourneyStep.INCOME)
        resp = client.post("/api/income/start", json={"platform": "lyft"}, headers=auth(journey))
        assert resp.status_code == 400

    def test_connection_success_advances_to_offer(self, client, db, make_journey):
        journey = make_journey(step=JourneyStep.INCOME)
        client.post("/api/income/start", json={"platform": "99"}, headers=auth(journey))

        resp = client.post("/api/income/result", json={
            "event": "connection_success",
            "success": True,
            "data": {"user_id": "u-1", "platform": "99", "account_id": "acc-1"},
        }, headers=auth(journey))

        assert resp.json() == {"status": "verified", "platform": "99", "current_step": "offer"}
        db.refresh(journey)
        assert journey.income_account_id == "acc-1"

    def test_connection_error_allows_restart(self, client, make_journey):
        journey = make_journey(step=JourneyStep.INCOME)
        client.post("/api/income/start", json={"platform": "uber"}, headers=auth(journey))

        failed = client.post("/api/income/result", json={
            "event": "connection_error",
            "success": False,
            "error": {"code": "invalid_credentials", "message": "Wrong password"},
        }, headers=auth(journey)).json()
        restarted = client.post("/api/income/start", json={"platform": "ifood"}, headers=auth(journey)).json()

        assert failed["status"] == "failed"
        assert failed["current_step"] == "income"
        assert restarted["status"] == "pending"
        status = client.get("/api/income/status", headers=auth(journey)).json()
        assert status == {"status": "pending", "platform": "ifood", "current_step": "income"}


class TestOffer:
    def test_installment_math(self):
        offer = calculate_offer(1500)
        assert offer["installments"] == 12
        assert offer["installment_value"] == 185
        assert offer["total"] == 2220

    def test_get_offer(self, client, make_journey):
        journey = make_journey(step=JourneyStep.OFFER, approved_amount=2000, device_model="SM-A546E")

        body = client.get("/api/offer", headers=auth(journey)).json()

        assert body["approved_amount"] == 2000
        assert body["monthly_rate"] == 3.99
        assert body["installment_value"] == calculate_offer(2000)["installment_value"]

    def test_offer_not_reachable_early(self, client, make_journey):
        journey = make_journey(step=JourneyStep.DEVICE)
        assert client.get("/api/offer", headers=auth(journey)).status_code == 409

    def test_accept_is_idempotent(self, client, make_journey):
        journey = make_journey(step=JourneyStep.OFFER, approved_amount=1500)

        first = client.post("/api/offer/accept", headers=auth(journey)).json()
        again = client.post("/api/offer/accept", headers=auth(journey)).json()

        assert first["current_step"] == "guard_registration"
        assert first["already_processed"] is False
        assert again["already_processed"] is True
        assert again["current_step"] == "guard_registration"

    def test_decline_abandons_journey(self, client, db, make_journey):
        journey = make_journey(step=JourneyStep.OFFER, approved_amount=1500)

        assert client.post("/api/offer/decline", headers=auth(journey)).status_code == 200

        db.refresh(journey)
        assert journey.status == "abandoned"
        resp = client.post("/api/offer/accept", headers=auth(journey))
        assert resp.status_code == 410
        assert resp.json()["reason"] == "journey_abandoned"


class TestGuardAndContract:
    def test_guard_rejects_invalid_imei(self, client, make_journey):
        journey = make_journey(step=JourneyStep.GUARD_REGISTRATION)
        resp = client.post("/api/guard/register", json={"imei": "490154203237517"}, headers=auth(journey))
        assert resp.status_code == 400
        assert resp.json()["reason"] == "invalid_imei"

    def test_guard_registration(self, client, db, make_journey):
        journey = make_journey(step=JourneyStep.GUARD_REGISTRATION)

        body = client.post("/api/guard/register", json={"imei": VALID_IMEI}, headers=auth(journey)).json()

        assert body["current_step"] == "contract"
        db.refresh(journey)
        assert journey.guard_imei == VALID_IMEI

    def test_sign_completes_journey(self, client, db, make_journey):
        journey = make_journey(step=JourneyStep.CONTRACT, approved_amount=1500, guard_imei=VALID_IMEI)

        summary = client.get("/api/contract", headers=auth(journey)).json()
        signed = client.post("/api/contract/sign", json={"accept_terms": True}, headers=auth(journey)).json()
        replay = client.post("/api/contract/sign", json={"accept_terms": True}, headers=auth(journey)).json()

        assert summary["lead_name"] == "Maria Souza"
        assert summary["total"] == 2220
        assert summary["amounts_display"]["total"] == "R$ 2.220,00"
        assert summary["amounts_display"]["installment_value"] == "R$ 185,00"
        assert signed["contract_id"].startswith("CTR-")
        assert signed["current_step"] == "success"
        assert replay["already_processed"] is True
        assert replay["contract_id"] == signed["contract_id"]
        db.refresh(journey)
        assert journey.status == "completed"
        assert journey.completed_at is not None

    def test_terms_must_be_accepted(self, client, make_journey):
        journey = make_journey(step=JourneyStep.CONTRACT)
        resp = client.post("/api/contract/sign", json={"accept_terms": False}, headers=auth(journey))
        assert resp.status_code == 400
        assert resp.json()["reason"] == "terms_not_accepted"

    def test_lapsed_otp_blocks_signature(self, client, db, make_journey):
        journey = make_journey(step=JourneyStep.CONTRACT, otp_verified=False)
        journey.otp_verified_at = utcnow() - timedelta(hours=1)
        db.commit()

        resp = client.post("/api/contract/sign", json={"accept_terms": True}, headers=auth(journey))

        assert resp.status_code == 410
        assert resp.json()["reason"] == "otp_expired"
