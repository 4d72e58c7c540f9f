from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from jobrelay.core.models import DeliveryResult, OutgoingMessage

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
IMAGE_HEADERS = {"User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"}


class TelegramChannel:
    """Bot API delivery. Every send returns a ``DeliveryResult`` and never raises."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        admin_chat_id: str | None = None,
        timeout_seconds: float = 20,
        client: httpx.Client | None = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.admin_chat_id = str(admin_chat_id) if admin_chat_id else None
        self.timeout = timeout_seconds
        self.client = client or httpx.Client(follow_redirects=True)

    @classmethod
    def from_config(cls, config: dict[str, Any], client: httpx.Client | None = None) -> "TelegramChannel":
        section = config.get("telegram", {})
        return cls(
            bot_token=section.get("bot_token", ""),
            chat_id=section.get("chat_id", ""),
            admin_chat_id=section.get("admin_chat_id") or None,
            timeout_seconds=float(section.get("timeout_seconds", 20)),
            client=client,
        )

    def _url(self, method: str) -> str:
        return f"{API_BASE}/bot{self.bot_token}/{method}"

    @staticmethod
    def _result(response: httpx.Response, method: str, with_image: bool) -> DeliveryResult:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict) or not data.get("ok"):
            logger.warning(
                "telegram_send_failed",
                extra={
                    "extra_fields": {
                        "method": method,
                        "status": response.status_code,
                        "description": data.get("description") if isinstance(data, dict) else None,
                    }
                },
            )
            return DeliveryResult(success=False, with_image=with_image)
        message_id = (data.get("result") or {}).get("message_id")
        return DeliveryResult(success=True, message_id=message_id, with_image=with_image)

    def send_text(self, chat_id: str, text: str) -> DeliveryResult:
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML", "disable_web_page_preview": False}
        try:
            response = self.client.post(self._url("sendMessage"), json=payload, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.warning("telegram_send_failed", extra={"extra_fields": {"method": "sendMessage", "error": str(exc)}})
            return DeliveryResult(success=False)
        return self._result(response, "sendMessage", with_image=False)

    def send_photo(self, chat_id: str, image_url: str, caption: str) -> DeliveryResult:
        try:
            image = self.client.get(image_url, headers=IMAGE_HEADERS, timeout=self.timeout)
            image.raise_for_status()
            response = self.client.post(
                self._url("sendPhoto"),
                data={"chat_id": chat_id, "caption": caption, "parse_mode": "HTML"},
                files={"photo": ("photo.jpg", image.content)},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "telegram_send_failed",
                extra={"extra_fields": {"method": "sendPhoto", "image_url": image_url, "error": str(exc)}},
            )
            return DeliveryResult(success=False, with_image=True)
        return self._result(response, "sendPhoto", with_image=True)

    def publish(self, message: OutgoingMessage) -> DeliveryResult:
        if message.has_image and message.image_url:
            result = self.send_photo(self.chat_id, message.image_url, message.text)
            if result.success:
                return result
            logger.info("photo_fallback_to_text", extra={"extra_fields": {"image_url": message.image_url}})
        return self.send_text(self.chat_id, message.text)

    def send_alert(self, text: str) -> DeliveryResult | None:
        if not self.admin_chat_id:
            return None
        stamp = datetime.now(timezone.utc).isoformat()
        return self.send_text(self.admin_chat_id, f"⚠️ <b>Job Relay Alert</b>\n\n{text}\n\n<i>{stamp}</i>")

    def send_admin(self, text: str) -> DeliveryResult | None:
        if not self.admin_chat_id:
            return None
        return self.send_text(self.admin_chat_id, text)
