"""HTTP client for the official account API.

Implements :class:`wemp.runtime.ChannelSender` on top of the customer-service
message endpoints, plus the generic GET/POST helpers the user-management
module builds on. Every call returns a :class:`wemp.errors.Result`.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

import httpx
from loguru import logger

from wemp.config.schema import WempAccountConfig
from wemp.constants import (
    ACCESS_TOKEN_REFRESH_ADVANCE_MS,
    DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    MAX_DATA_URL_BYTES,
    MAX_IMAGE_BYTES,
    MEDIA_CACHE_ADVANCE_EXPIRY_MS,
    MEDIA_CACHE_EXPIRY_MS,
    MEDIA_DOWNLOAD_TIMEOUT_SECONDS,
    MEDIA_UPLOAD_TIMEOUT_SECONDS,
)
from wemp.errors import ApiError, DeliveryError, Result, ValidationError, err, ok
from wemp.settings import get_settings

# errcodes meaning the cached access token is no longer valid
_TOKEN_ERRCODES = frozenset({40001, 40014, 42001})

_EXT_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def decode_data_url(url: str, max_bytes: int = MAX_DATA_URL_BYTES) -> Result[tuple[bytes, str]]:
    """Decode a base64 ``data:image/...`` URL into ``(bytes, mime)``."""
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:image/") or not header.endswith(";base64"):
        return err(ValidationError("not a base64 image data URL"))
    mime = header[len("data:"):-len(";base64")].lower()
    # base64 grows data by 4/3; reject early before decoding
    if len(payload) * 3 // 4 > max_bytes + 3:
        return err(ValidationError(f"data URL exceeds {max_bytes} bytes"))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        return err(ValidationError(f"invalid base64 in data URL: {exc}"))
    if len(data) > max_bytes:
        return err(ValidationError(f"data URL exceeds {max_bytes} bytes"))
    return ok((data, mime))


class WechatMpClient:
    """Official account API client for one account."""

    def __init__(
        self,
        account_id: str,
        account: WempAccountConfig,
        *,
        base_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.account_id = account_id
        self.account = account
        self._http = http or httpx.AsyncClient(
            base_url=base_url or get_settings().api_base_url,
            timeout=DEFAULT_FETCH_TIMEOUT_SECONDS,
        )
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0
        self._media_cache: dict[str, tuple[str, int]] = {}

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> WechatMpClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @property
    def _tag(self) -> str:
        return f"[wemp:{self.account_id}]"

    # ------------------------------------------------------------------
    # Access token
    # ------------------------------------------------------------------

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0

    async def get_access_token(self, force_refresh: bool = False) -> Result[str]:
        now = self._clock()
        if not force_refresh and self._token and now < self._token_expires_at - ACCESS_TOKEN_REFRESH_ADVANCE_MS:
            return ok(self._token)

        if not self.account.app_id or not self.account.app_secret:
            return err(ApiError("app_id / app_secret not configured"))

        try:
            resp = await self._http.get(
                "/cgi-bin/token",
                params={
                    "grant_type": "client_credential",
                    "appid": self.account.app_id,
                    "secret": self.account.app_secret,
                },
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"{self._tag} Access token request failed: {exc}")
            return err(ApiError(f"access token request failed: {exc}"))

        token = data.get("access_token")
        if not token:
            errcode = data.get("errcode")
            return err(ApiError(f"access token error: {data.get('errmsg', 'unknown')}", errcode))

        expires_in = int(data.get("expires_in") or DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS)
        self._token = token
        self._token_expires_at = now + expires_in * 1000
        logger.debug(f"{self._tag} Access token refreshed, expires in {expires_in}s")
        return ok(token)

    # ------------------------------------------------------------------
    # Generic calls
    # ------------------------------------------------------------------

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        timeout: float | None = None,
        _retried: bool = False,
    ) -> Result[dict[str, Any]]:
        token = await self.get_access_token()
        if not token.ok:
            return err(token.error)  # type: ignore[arg-type]

        query = {k: v for k, v in (params or {}).items() if v is not None}
        query["access_token"] = token.data
        kwargs: dict[str, Any] = {"params": query}
        if body is not None:
            kwargs["content"] = json.dumps(body, ensure_ascii=False).encode("utf-8")
            kwargs["headers"] = {"Content-Type": "application/json; charset=utf-8"}
        if files is not None:
            kwargs["files"] = files
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            resp = await self._http.request(method, path, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"{self._tag} {method} {path} failed: {exc}")
            return err(ApiError(f"{method} {path} failed: {exc}"))

        errcode = int(data.get("errcode") or 0)
        if errcode in _TOKEN_ERRCODES and not _retried:
            logger.info(f"{self._tag} Access token rejected ({errcode}), refreshing")
            self.invalidate_token()
            return await self._call(
                method, path, params=params, body=body, files=files, timeout=timeout, _retried=True,
            )
        if errcode:
            return err(ApiError(f"{path}: {data.get('errmsg', 'unknown error')} ({errcode})", errcode))
        return ok(data)

    async def api_get(self, path: str, params: dict[str, Any] | None = None) -> Result[dict[str, Any]]:
        return await self._call("GET", path, params=params)

    async def api_post(
        self,
        path: str,
        body: dict[str, Any],
        params: dict[str, Any] | None = None,
    ) -> Result[dict[str, Any]]:
        return await self._call("POST", path, params=params, body=body)

    # ------------------------------------------------------------------
    # ChannelSender
    # ------------------------------------------------------------------

    async def _send_custom(self, body: dict[str, Any]) -> Result[None]:
        result = await self.api_post("/cgi-bin/message/custom/send", body)
        if not result.ok:
            error = result.error
            return err(DeliveryError(str(error), getattr(error, "errcode", None)))
        return ok()

    async def send_text(self, open_id: str, text: str) -> Result[None]:
        return await self._send_custom({"touser": open_id, "msgtype": "text", "text": {"content": text}})

    async def send_media(self, open_id: str, msg_type: str, media_id: str) -> Result[None]:
        """Send an image/voice/video message by an already uploaded media id."""
        return await self._send_custom({"touser": open_id, "msgtype": msg_type, msg_type: {"media_id": media_id}})

    async def send_typing(self, open_id: str) -> Result[None]:
        result = await self.api_post("/cgi-bin/message/custom/typing", {"touser": open_id, "command": "Typing"})
        return ok() if result.ok else err(result.error)  # type: ignore[arg-type]

    async def send_image_by_url(self, open_id: str, url: str) -> Result[None]:
        media = await self.upload_image_url(url)
        if not media.ok:
            return err(DeliveryError(f"image upload failed: {media.error}"))
        return await self.send_media(open_id, "image", media.data)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def _download_image(self, url: str) -> Result[tuple[bytes, str]]:
        try:
            async with self._http.stream("GET", url, timeout=MEDIA_DOWNLOAD_TIMEOUT_SECONDS) as resp:
                resp.raise_for_status()
                mime = resp.headers.get("content-type", "").split(";")[0].strip().lower()
                chunks: list[bytes] = []
                size = 0
                async for chunk in resp.aiter_bytes():
                    size += len(chunk)
                    if size > MAX_IMAGE_BYTES:
                        return err(ValidationError(f"image exceeds {MAX_IMAGE_BYTES} bytes: {url}"))
                    chunks.append(chunk)
        except httpx.HTTPError as exc:
            return err(ApiError(f"image download failed: {exc}"))

        if not mime.startswith("image/"):
            ext = urlsplit(url).path.rsplit(".", 1)[-1].lower()
            mime = next((m for m, e in _EXT_BY_MIME.items() if e == ext), "image/jpeg")
        return ok((b"".join(chunks), mime))

    async def upload_image_url(self, url: str) -> Result[str]:
        """Upload an http(s) or data URL image as temporary media; returns media_id."""
        cache_key = hashlib.sha256(url.encode("utf-8")).hexdigest()
        cached = self._media_cache.get(cache_key)
        now = self._clock()
        if cached and now < cached[1]:
            return ok(cached[0])

        loaded = decode_data_url(url) if url.startswith("data:") else await self._download_image(url)
        if not loaded.ok:
            return err(loaded.error)  # type: ignore[arg-type]
        data, mime = loaded.data  # type: ignore[misc]

        filename = f"image.{_EXT_BY_MIME.get(mime, 'jpg')}"
        result = await self._call(
            "POST",
            "/cgi-bin/media/upload",
            params={"type": "image"},
            files={"media": (filename, data, mime)},
            timeout=MEDIA_UPLOAD_TIMEOUT_SECONDS,
        )
        if not result.ok:
            return err(result.error)  # type: ignore[arg-type]
        media_id = (result.data or {}).get("media_id")
        if not media_id:
            return err(ApiError("media upload returned no media_id"))

        self._media_cache[cache_key] = (
            media_id,
            now + MEDIA_CACHE_EXPIRY_MS - MEDIA_CACHE_ADVANCE_EXPIRY_MS,
        )
        logger.debug(f"{self._tag} Uploaded image ({len(data)} bytes) → {media_id}")
        return ok(media_id)
