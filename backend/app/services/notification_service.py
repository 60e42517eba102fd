"""
Notification Service — OTP delivery over WhatsApp (Callbell) or SMS (ClickSend).

Delivery is best-effort: failures are logged and reported as a falsy result,
never raised, so code issuance does not depend on the provider.
"""
from typing import Any, Dict

import httpx

from app.config import get_settings
from app.utils.logger import get_logger
from app.utils.validators import to_international

logger = get_logger("notification")


def _otp_message(code: str, ttl_minutes: int) -> str:
    return (
        f"*Cashly* - Seu código de verificação é: *{code}*\n\n"
        f"Este código expira em {ttl_minutes} minutos.\n"
        "Não compartilhe este código com ninguém."
    )


class NotificationService:

    @staticmethod
    def send_whatsapp(phone: str, message: str) -> Dict[str, Any]:
        settings = get_settings()
        if not settings.CALLBELL_API_KEY:
            logger.error("Callbell API key not configured")
            return {"success": False, "provider": "callbell", "error": "WhatsApp service not configured"}

        payload: Dict[str, Any] = {
            "to": to_international(phone),
            "from": "whatsapp",
            "type": "text",
            "content": {"text": message},
        }
        if settings.CALLBELL_CHANNEL_UUID:
            payload["channel_uuid"] = settings.CALLBELL_CHANNEL_UUID

        try:
            resp = httpx.post(
                settings.CALLBELL_API_URL,
                headers={"Authorization": f"Bearer {settings.CALLBELL_API_KEY}"},
                json=payload,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Callbell request failed: %s", e)
            return {"success": False, "provider": "callbell", "error": "Failed to connect to WhatsApp service"}

        message_id = (data.get("message") or {}).get("uuid")
        if resp.is_success and message_id:
            return {"success": True, "provider": "callbell", "message_id": message_id}

        logger.warning("Callbell rejected message: status=%s error=%s", resp.status_code, data.get("error"))
        return {"success": False, "provider": "callbell", "error": data.get("error") or "Failed to send WhatsApp message"}

    @staticmethod
    def send_sms(phone: str, message: str) -> Dict[str, Any]:
        settings = get_settings()
        if not settings.CLICKSEND_USERNAME or not settings.CLICKSEND_API_KEY:
            logger.error("ClickSend credentials not configured")
            return {"success": False, "provider": "clicksend", "error": "SMS service not configured"}

        payload = {
            "messages": [
                {"to": to_international(phone), "body": message, "from": settings.SMS_SENDER_ID},
            ]
        }
        try:
            resp = httpx.post(
                settings.CLICKSEND_API_URL,
                auth=(settings.CLICKSEND_USERNAME, settings.CLICKSEND_API_KEY),
                json=payload,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("ClickSend request failed: %s", e)
            return {"success": False, "provider": "clicksend", "error": "Failed to connect to SMS service"}

        if data.get("response_code") == "SUCCESS":
            messages = (data.get("data") or {}).get("messages") or [{}]
            return {"success": True, "provider": "clicksend", "message_id": messages[0].get("message_id")}

        logger.warning("ClickSend rejected message: %s", data.get("response_msg"))
        return {"success": False, "provider": "clicksend", "error": data.get("response_msg") or "Failed to send SMS"}

    @staticmethod
    def send_otp(phone: str, code: str) -> Dict[str, Any]:
        """Deliver an OTP code on the configured channel."""
        settings = get_settings()
        message = _otp_message(code, settings.OTP_CODE_TTL_MINUTES)
        if settings.OTP_CHANNEL == "sms":
            result = NotificationService.send_sms(phone, message)
        else:
            result = NotificationService.send_whatsapp(phone, message)
        result["channel"] = settings.OTP_CHANNEL
        return result
