"""Channel events that don't go through the agent: pairing and menu clicks."""

from __future__ import annotations

from loguru import logger

from wemp.constants import PAIRING_CODE_EXPIRY_MS
from wemp.errors import NotFoundError, Result, ValidationError, err, ok
from wemp.menu_payload import (
    FinderPayload,
    ImagePayload,
    MenuPayloadRegistry,
    NewsPayload,
    TextPayload,
    UnknownPayload,
    VideoPayload,
    VoicePayload,
    get_menu_registry,
    parse_click_key,
)
from wemp.pairing import PairingRegistry, get_pairing_registry
from wemp.runtime import ChannelSender


def pairing_code_message(code: str, ttl_ms: int = PAIRING_CODE_EXPIRY_MS) -> str:
    minutes = max(ttl_ms // 60_000, 1)
    return (
        f"你的配对码是：{code}\n\n"
        f"请在 {minutes} 分钟内，把配对码发送给你在其他渠道（如 Telegram）上的助手完成配对。"
    )


ALREADY_PAIRED_MESSAGE = "你已经完成配对，可以直接和助手对话。"
UNPAIRED_MESSAGE = "已解除配对。"
NOT_PAIRED_MESSAGE = "你当前没有配对。"


class ChannelEventHandler:
    """Handles pairing requests, unpair requests and custom-menu clicks."""

    def __init__(
        self,
        sender: ChannelSender,
        pairing: PairingRegistry | None = None,
        menus: MenuPayloadRegistry | None = None,
    ) -> None:
        self.sender = sender
        self.pairing = pairing or get_pairing_registry()
        self.menus = menus or get_menu_registry()

    async def on_pairing_request(self, account_id: str, open_id: str) -> Result[str | None]:
        """Send the user a pairing code. Returns the code, or None if already paired."""
        if self.pairing.is_paired(account_id, open_id):
            sent = await self.sender.send_text(open_id, ALREADY_PAIRED_MESSAGE)
            return ok(None) if sent.ok else err(sent.error)  # type: ignore[arg-type]

        code = self.pairing.generate_pairing_code(account_id, open_id)
        sent = await self.sender.send_text(open_id, pairing_code_message(code, self.pairing.ttl_ms))
        if not sent.ok:
            logger.warning(f"[wemp:{account_id}] Could not send pairing code to {open_id}: {sent.error}")
            return err(sent.error)  # type: ignore[arg-type]
        return ok(code)

    async def on_unpair_request(self, account_id: str, open_id: str) -> Result[bool]:
        removed = self.pairing.unpair(account_id, open_id)
        sent = await self.sender.send_text(open_id, UNPAIRED_MESSAGE if removed else NOT_PAIRED_MESSAGE)
        if not sent.ok:
            return err(sent.error)  # type: ignore[arg-type]
        return ok(removed)

    async def on_menu_click(self, account_id: str, open_id: str, event_key: str) -> Result[None]:
        """Answer a click on a menu button whose key carries a payload id."""
        payload_id = parse_click_key(event_key)
        if payload_id is None:
            return err(ValidationError(f"not a menu payload key: {event_key!r}"))

        payload = self.menus.get(account_id, payload_id)
        if payload is None:
            logger.warning(f"[wemp:{account_id}] Menu payload {payload_id} not found")
            return err(NotFoundError(f"menu payload {payload_id} not found"))

        if isinstance(payload, TextPayload):
            return await self.sender.send_text(open_id, payload.text)
        if isinstance(payload, NewsPayload):
            return await self.sender.send_text(open_id, f"{payload.title}\n{payload.content_url}")
        if isinstance(payload, (ImagePayload, VoicePayload)):
            return await self.sender.send_media(open_id, payload.kind, payload.media_id)
        if isinstance(payload, (VideoPayload, FinderPayload)):
            return await self.sender.send_text(open_id, payload.value)
        if isinstance(payload, UnknownPayload) and (payload.url or payload.value):
            return await self.sender.send_text(open_id, payload.url or payload.value or "")

        logger.info(f"[wemp:{account_id}] Menu payload {payload_id} has nothing to send")
        return ok()
