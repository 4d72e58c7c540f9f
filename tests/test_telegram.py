from __future__ import annotations

import json

import httpx

from conftest import mock_client
from jobrelay.core.models import OutgoingMessage
from jobrelay.publish.telegram import TelegramChannel

IMAGE = "https://cdn.test/logo.png"


class BotApi:
    """Records Bot API calls and answers them from a per-method table."""

    def __init__(self, image_status: int = 200, photo_ok: bool = True, text_ok: bool = True) -> None:
        self.image_status = image_status
        self.photo_ok = photo_ok
        self.text_ok = text_ok
        self.calls: list[str] = []
        self.payloads: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.test":
            self.calls.append("image")
            return httpx.Response(self.image_status, content=b"\x89PNG")
        method = request.url.path.rsplit("/", 1)[-1]
        self.calls.append(method)
        if method == "sendMessage":
            self.payloads.append(json.loads(request.content))
            ok = self.text_ok
        else:
            ok = self.photo_ok
        if not ok:
            return httpx.Response(400, json={"ok": False, "description": "Bad Request: can't parse entities"})
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 77}})


def channel(api: BotApi, admin: str | None = "-100admin") -> TelegramChannel:
    return TelegramChannel("TOKEN", "-100chan", admin_chat_id=admin, client=mock_client(api))


def test_text_message_uses_html_parse_mode() -> None:
    api = BotApi()
    result = channel(api).publish(OutgoingMessage(text="<b>hi</b>", image_url=None, has_image=False))

    assert result.success
    assert result.message_id == 77
    assert not result.with_image
    assert api.calls == ["sendMessage"]
    assert api.payloads[0]["chat_id"] == "-100chan"
    assert api.payloads[0]["parse_mode"] == "HTML"


def test_photo_is_uploaded_when_available() -> None:
    api = BotApi()
    result = channel(api).publish(OutgoingMessage(text="caption", image_url=IMAGE, has_image=True))

    assert result.success
    assert result.with_image
    assert api.calls == ["image", "sendPhoto"]


def test_unreachable_image_falls_back_to_text() -> None:
    api = BotApi(image_status=404)
    result = channel(api).publish(OutgoingMessage(text="caption", image_url=IMAGE, has_image=True))

    assert result.success
    assert not result.with_image
    assert api.calls == ["image", "sendMessage"]


def test_rejected_photo_falls_back_to_text() -> None:
    api = BotApi(photo_ok=False)
    result = channel(api).publish(OutgoingMessage(text="caption", image_url=IMAGE, has_image=True))
    assert result.success
    assert api.calls == ["image", "sendPhoto", "sendMessage"]


def test_api_rejection_is_reported_not_raised() -> None:
    result = channel(BotApi(text_ok=False)).publish(OutgoingMessage(text="x", image_url=None, has_image=False))
    assert not result.success
    assert result.message_id is None


def test_transport_error_is_reported_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    result = TelegramChannel("T", "c", client=mock_client(handler)).send_text("c", "x")
    assert not result.success


def test_alerts_go_to_admin_chat_only_when_configured() -> None:
    api = BotApi()
    result = channel(api).send_alert("source down")
    assert result is not None and result.success
    assert api.payloads[0]["chat_id"] == "-100admin"
    assert "source down" in api.payloads[0]["text"]

    assert channel(BotApi(), admin=None).send_alert("x") is None
    assert channel(BotApi(), admin=None).send_admin("x") is None


def test_from_config_reads_telegram_section() -> None:
    config = {"telegram": {"bot_token": "T", "chat_id": 123, "admin_chat_id": "", "timeout_seconds": 5}}
    instance = TelegramChannel.from_config(config)
    assert instance.chat_id == "123"
    assert instance.admin_chat_id is None
    assert instance.timeout == 5.0
