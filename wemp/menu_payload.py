"""Lookup table behind custom-menu click keys.

A click key is limited to 128 bytes and breaks on some characters, so long
menu values (article titles, URLs, text replies) can't travel in it. The key
carries a short hash id instead and the payload lives here, per account.

Storage: ``<data_dir>/menu-payloads.json``
Format:
    {
        "version": 1,
        "accounts": {
            "<account_id>": {
                "<id>": {"payload": {"kind": "text", ...}, "updatedAt": 1718000000000}
            }
        }
    }
"""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from wemp.storage import JsonStore, get_data_dir

MENU_PAYLOAD_FILE = "menu-payloads.json"
MENU_ID_LENGTH = 16
CLICK_KEY_PREFIX = "wemp_menu:"


# ── payload variants ────────────────────────────────────────────────────────


class TextPayload(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class NewsPayload(BaseModel):
    kind: Literal["news"] = "news"
    title: str
    content_url: str = Field(alias="contentUrl")

    model_config = {"populate_by_name": True}


class ImagePayload(BaseModel):
    kind: Literal["image"] = "image"
    media_id: str = Field(alias="mediaId")

    model_config = {"populate_by_name": True}


class VoicePayload(BaseModel):
    kind: Literal["voice"] = "voice"
    media_id: str = Field(alias="mediaId")

    model_config = {"populate_by_name": True}


class VideoPayload(BaseModel):
    kind: Literal["video"] = "video"
    value: str


class FinderPayload(BaseModel):
    kind: Literal["finder"] = "finder"
    value: str


class UnknownPayload(BaseModel):
    kind: Literal["unknown"] = "unknown"
    original_type: str | None = Field(default=None, alias="originalType")
    key: str | None = None
    value: str | None = None
    url: str | None = None

    model_config = {"populate_by_name": True}


MenuPayload = Annotated[
    Union[
        TextPayload,
        NewsPayload,
        ImagePayload,
        VoicePayload,
        VideoPayload,
        FinderPayload,
        UnknownPayload,
    ],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter[MenuPayload] = TypeAdapter(MenuPayload)


def payload_to_dict(payload: MenuPayload) -> dict[str, Any]:
    """Wire form of a payload: camelCase keys, unset optionals dropped."""
    return payload.model_dump(by_alias=True, exclude_none=True)


def parse_payload(data: dict[str, Any]) -> MenuPayload:
    return _payload_adapter.validate_python(data)


def make_id(account_id: str, payload: MenuPayload) -> str:
    """Stable short id for (account, payload): 16 hex chars of a SHA-256."""
    canonical = json.dumps(
        payload_to_dict(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    h = hashlib.sha256()
    h.update(account_id.encode("utf-8"))
    h.update(b"\n")
    h.update(canonical.encode("utf-8"))
    return h.hexdigest()[:MENU_ID_LENGTH]


def build_click_key(payload_id: str) -> str:
    return f"{CLICK_KEY_PREFIX}{payload_id}"


def parse_click_key(key: str) -> str | None:
    """Return the payload id carried by a click key, or None for foreign keys."""
    if not key or not key.startswith(CLICK_KEY_PREFIX):
        return None
    payload_id = key[len(CLICK_KEY_PREFIX):]
    return payload_id or None


def _empty_document() -> dict[str, Any]:
    return {"version": 1, "accounts": {}}


class MenuPayloadRegistry:
    """Per-account ``id -> payload`` map persisted in one JSON document."""

    def __init__(self, path: Path | None = None) -> None:
        self._store: JsonStore[dict[str, Any]] = JsonStore(
            path or get_data_dir() / MENU_PAYLOAD_FILE,
            _empty_document,
        )

    make_id = staticmethod(make_id)

    def upsert(self, account_id: str, payload_id: str, payload: MenuPayload) -> None:
        entry = {"payload": payload_to_dict(payload), "updatedAt": int(time.time() * 1000)}

        def _apply(data: dict[str, Any]) -> dict[str, Any]:
            data.setdefault("version", 1)
            data.setdefault("accounts", {}).setdefault(account_id, {})[payload_id] = entry
            return data

        self._store.update(_apply)

    def register(self, account_id: str, payload: MenuPayload) -> str:
        """Store *payload* under its deterministic id and return the id."""
        payload_id = make_id(account_id, payload)
        self.upsert(account_id, payload_id, payload)
        return payload_id

    def get(self, account_id: str, payload_id: str) -> MenuPayload | None:
        data = self._store.read()
        entry = data.get("accounts", {}).get(account_id, {}).get(payload_id)
        if not entry:
            return None
        try:
            return parse_payload(entry["payload"])
        except (KeyError, TypeError, PydanticValidationError) as exc:
            logger.warning(f"[wemp:{account_id}] Corrupt menu payload {payload_id}: {exc}")
            return None

    def clear_cache(self) -> None:
        self._store.clear_cache()


_registry: MenuPayloadRegistry | None = None


def get_menu_registry() -> MenuPayloadRegistry:
    """Return the process-wide :class:`MenuPayloadRegistry`."""
    global _registry
    if _registry is None:
        _registry = MenuPayloadRegistry()
    return _registry
