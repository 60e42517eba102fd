import httpx
import pytest

from app.config import get_settings
from app.services import address_service, notification_service
from app.services.address_service import AddressService
from app.services.notification_service import NotificationService


def _response(status, payload, url="https://provider.test"):
    return httpx.Response(status, json=payload, request=httpx.Request("POST", url))


@pytest.fixture()
def provider_keys(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "CALLBELL_API_KEY", "cb-key")
    monkeypatch.setattr(settings, "CLICKSEND_USERNAME", "user")
    monkeypatch.setattr(settings, "CLICKSEND_API_KEY", "cs-key")
    return settings


class TestNotifications:
    def test_whatsapp_payload(self, monkeypatch, provider_keys):
        captured = {}

        def _fake_post(url, headers=None, json=None, timeout=None):
            captured.update(url=url, headers=headers, json=json)
            return _response(200, {"message": {"uuid": "m-1", "status": "enqueued"}})

        monkeypatch.setattr(notification_service.httpx, "post", _fake_post)

        result = NotificationService.send_whatsapp("5511987654321", "hello")

        assert result == {"success": True, "provider": "callbell", "message_id": "m-1"}
        assert captured["json"]["to"] == "+5511987654321"
        assert captured["headers"]["Authorization"] == "Bearer cb-key"

    def test_sms_failure_is_reported_not_raised(self, monkeypatch, provider_keys):
        def _fake_post(url, auth=None, json=None, timeout=None):
            return _response(200, {"response_code": "INVALID_RECIPIENT", "response_msg": "bad number"})

        monkeypatch.setattr(notification_service.httpx, "post", _fake_post)

        result = NotificationService.send_sms("11987654321", "hello")

        assert result["success"] is False
        assert result["error"] == "bad number"

    def test_transport_error(self, monkeypatch, provider_keys):
        def _fake_post(*args, **kwargs):
            raise httpx.ConnectTimeout("slow")

        monkeypatch.setattr(notification_service.httpx, "post", _fake_post)

        assert NotificationService.send_whatsapp("11987654321", "hi")["success"] is False

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "CALLBELL_API_KEY", "")
        assert NotificationService.send_whatsapp("11987654321", "hi")["success"] is False


class TestAddress:
    def test_lookup(self, monkeypatch):
        def _fake_get(url, headers=None, timeout=None):
            assert url.endswith("/01310100/json/")
            return _response(200, {
                "cep": "01310-100", "logradouro": "Avenida Paulista", "bairro": "Bela Vista",
                "localidade": "São Paulo", "uf": "SP",
            }, url)

        monkeypatch.setattr(address_service.httpx, "get", _fake_get)

        assert AddressService.lookup("01310-100") == {
            "street": "Avenida Paulista", "neighborhood": "Bela Vista", "city": "São Paulo", "uf": "SP",
        }

    def test_unknown_cep_and_failures_are_not_errors(self, client, monkeypatch):
        monkeypatch.setattr(address_service.httpx, "get",
                            lambda url, headers=None, timeout=None: _response(200, {"erro": True}, url))
        body = client.get("/api/address/99999999").json()
        assert body["found"] is False

        def _down(*args, **kwargs):
            raise httpx.ConnectError("down")

        monkeypatch.setattr(address_service.httpx, "get", _down)
        assert client.get("/api/address/01310100").json()["found"] is False
        assert client.get("/api/address/123").json()["found"] is False
