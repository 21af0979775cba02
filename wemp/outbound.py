"""Outbound delivery: split long replies and send them in order."""

from __future__ import annotations

import asyncio
import time

from loguru import logger

from wemp.constants import (
    MAX_IMAGES_PER_MESSAGE,
    MESSAGE_CHUNK_DELAY_MS,
    PUNCTUATION_SEARCH_RANGE,
    SPLIT_PUNCTUATION,
    WECHAT_MESSAGE_TEXT_LIMIT,
)
from wemp.errors import DeliveryError, Result, err, ok
from wemp.runtime import ChannelSender


def split_message(text: str, max_length: int = WECHAT_MESSAGE_TEXT_LIMIT) -> list[str]:
    """Split *text* into chunks of at most *max_length* characters.

    Each cut goes right after the last punctuation mark found within
    ``PUNCTUATION_SEARCH_RANGE`` characters before the limit, or exactly at
    the limit if there is none. Joining the chunks gives back *text*.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")

    parts: list[str] = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            parts.append(remaining)
            break

        split_at = max_length
        lower = max(max_length - PUNCTUATION_SEARCH_RANGE, 0)
        for i in range(max_length - 1, lower, -1):
            if remaining[i] in SPLIT_PUNCTUATION:
                split_at = i + 1
                break

        parts.append(remaining[:split_at])
        remaining = remaining[split_at:]

    return parts


class OutboundDispatcher:
    """Sends text chunks and images for one account through a channel sender."""

    def __init__(
        self,
        sender: ChannelSender,
        *,
        account_id: str = "default",
        text_limit: int = WECHAT_MESSAGE_TEXT_LIMIT,
        chunk_delay: float = MESSAGE_CHUNK_DELAY_MS / 1000,
        max_images: int = MAX_IMAGES_PER_MESSAGE,
    ) -> None:
        self.sender = sender
        self.account_id = account_id
        self.text_limit = text_limit
        self.chunk_delay = chunk_delay
        self.max_images = max_images

    async def send_text(self, open_id: str, text: str) -> Result[str]:
        """Send *text* chunk by chunk; stop at the first failed chunk.

        Returns a synthetic message id on success.
        """
        parts = [p for p in split_message(text, self.text_limit) if p.strip()]

        for i, part in enumerate(parts):
            result = await self.sender.send_text(open_id, part)
            if not result.ok:
                error = result.error
                if not isinstance(error, DeliveryError):
                    error = DeliveryError(str(error))
                logger.warning(
                    f"[wemp:{self.account_id}] Text chunk {i + 1}/{len(parts)} "
                    f"to {open_id} failed: {error}"
                )
                return err(error)
            if i < len(parts) - 1:
                await asyncio.sleep(self.chunk_delay)

        return ok(f"wemp-{int(time.time() * 1000)}")

    async def send_images(self, open_id: str, urls: list[str]) -> int:
        """Send up to ``max_images`` images, best effort. Returns how many went out."""
        sent = 0
        for url in [u for u in urls if u][: self.max_images]:
            try:
                result = await self.sender.send_image_by_url(open_id, url)
            except Exception as exc:
                logger.warning(f"[wemp:{self.account_id}] Error sending image: {exc}")
                continue
            if result.ok:
                sent += 1
            else:
                logger.warning(f"[wemp:{self.account_id}] Image send failed: {result.error}")
        return sent
