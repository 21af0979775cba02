import base64
import json

import httpx
import pytest

from wemp.api.client import WechatMpClient, decode_data_url
from wemp.config.schema import WempAccountConfig
from wemp.errors import ApiError, DeliveryError, ValidationError
from wemp.runtime import ChannelSender

_PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
_DATA_URL = "data:image/png;base64," + base64.b64encode(_PNG_BYTES).decode()


class _FakeApi:
    """Stands in for the official account API; records every request."""

    def __init__(self, send_errcodes: list[int] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.tokens_issued = 0
        self.send_errcodes = list(send_errcodes or [])

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/cgi-bin/token":
            self.tokens_issued += 1
            return httpx.Response(200, json={"access_token": f"T{self.tokens_issued}", "expires_in": 7200})
        if path == "/cgi-bin/message/custom/send":
            errcode = self.send_errcodes.pop(0) if self.send_errcodes else 0
            return httpx.Response(200, json={"errcode": errcode, "errmsg": "ok" if not errcode else "failed"})
        if path == "/cgi-bin/message/custom/typing":
            return httpx.Response(200, json={"errcode": 0, "errmsg": "ok"})
        if path == "/cgi-bin/media/upload":
            return httpx.Response(200, json={"type": "image", "media_id": "MEDIA_1", "created_at": 1})
        if request.url.host == "img.test":
            return httpx.Response(200, content=_PNG_BYTES, headers={"content-type": "image/png"})
        return httpx.Response(404)


def _client(api: _FakeApi, **account) -> WechatMpClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="https://api.test")
    config = WempAccountConfig(**({"app_id": "wx123", "app_secret": "secret"} | account))
    return WechatMpClient("acc", config, http=http)


@pytest.mark.asyncio
async def test_send_text_uses_cached_access_token() -> None:
    api = _FakeApi()
    client = _client(api)

    first = await client.send_text("u1", "你好")
    second = await client.send_text("u1", "再见")
    await client.aclose()

    assert first.ok and second.ok
    assert api.tokens_issued == 1
    assert api.bodies("/cgi-bin/message/custom/send") == [
        {"touser": "u1", "msgtype": "text", "text": {"content": "你好"}},
        {"touser": "u1", "msgtype": "text", "text": {"content": "再见"}},
    ]
    send = [r for r in api.requests if r.url.path == "/cgi-bin/message/custom/send"][0]
    assert send.url.params["access_token"] == "T1"
    assert "你好".encode("utf-8") in send.content


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_call_retried() -> None:
    api = _FakeApi(send_errcodes=[42001])
    client = _client(api)

    result = await client.send_text("u1", "hi")
    await client.aclose()

    assert result.ok
    assert api.tokens_issued == 2
    sends = [r for r in api.requests if r.url.path == "/cgi-bin/message/custom/send"]
    assert [r.url.params["access_token"] for r in sends] == ["T1", "T2"]


@pytest.mark.asyncio
async def test_api_errcode_becomes_delivery_error() -> None:
    api = _FakeApi(send_errcodes=[45015])
    client = _client(api)

    result = await client.send_text("u1", "hi")
    await client.aclose()

    assert not result.ok
    assert isinstance(result.error, DeliveryError)
    assert result.error.errcode == 45015


@pytest.mark.asyncio
async def test_missing_credentials_fail_without_request() -> None:
    api = _FakeApi()
    client = _client(api, app_id="", app_secret="")

    result = await client.send_text("u1", "hi")
    await client.aclose()

    assert not result.ok
    assert isinstance(result.error, ApiError)
    assert api.requests == []


@pytest.mark.asyncio
async def test_typing_and_media_messages() -> None:
    api = _FakeApi()
    client = _client(api)

    assert (await client.send_typing("u1")).ok
    assert (await client.send_media("u1", "voice", "V1")).ok
    await client.aclose()

    assert api.bodies("/cgi-bin/message/custom/typing") == [{"touser": "u1", "command": "Typing"}]
    assert api.bodies("/cgi-bin/message/custom/send") == [
        {"touser": "u1", "msgtype": "voice", "voice": {"media_id": "V1"}},
    ]


@pytest.mark.asyncio
async def test_data_url_image_is_uploaded_once_and_sent() -> None:
    api = _FakeApi()
    client = _client(api)

    assert (await client.send_image_by_url("u1", _DATA_URL)).ok
    assert (await client.send_image_by_url("u2", _DATA_URL)).ok
    await client.aclose()

    uploads = [r for r in api.requests if r.url.path == "/cgi-bin/media/upload"]
    assert len(uploads) == 1
    assert uploads[0].url.params["type"] == "image"
    assert b'name="media"' in uploads[0].content
    assert _PNG_BYTES in uploads[0].content
    assert api.bodies("/cgi-bin/message/custom/send")[1] == {
        "touser": "u2",
        "msgtype": "image",
        "image": {"media_id": "MEDIA_1"},
    }


@pytest.mark.asyncio
async def test_http_image_is_downloaded_then_uploaded() -> None:
    api = _FakeApi()
    client = _client(api)

    result = await client.send_image_by_url("u1", "https://img.test/chart.png")
    await client.aclose()

    assert result.ok
    assert api.paths()[:3] == ["/chart.png", "/cgi-bin/token", "/cgi-bin/media/upload"]


@pytest.mark.asyncio
async def test_oversized_data_url_is_rejected_before_upload() -> None:
    api = _FakeApi()
    client = _client(api)
    big = "data:image/png;base64," + base64.b64encode(b"\0" * (3 * 1024 * 1024 + 10)).decode()

    result = await client.send_image_by_url("u1", big)
    await client.aclose()

    assert not result.ok
    assert "/cgi-bin/media/upload" not in api.paths()


def test_decode_data_url() -> None:
    decoded = decode_data_url(_DATA_URL)
    assert decoded.ok
    assert decoded.data == (_PNG_BYTES, "image/png")

    bad = decode_data_url("data:text/plain;base64,aGk=")
    assert not bad.ok
    assert isinstance(bad.error, ValidationError)

    assert not decode_data_url("data:image/png;base64,@@@").ok


@pytest.mark.asyncio
async def test_client_satisfies_channel_sender() -> None:
    client = _client(_FakeApi())

    assert isinstance(client, ChannelSender)
    await client.aclose()
