"""Message types exchanged between the channel and the agent runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from wemp.constants import CHANNEL_ID


@dataclass
class InboundMessage:
    """A text (or image + text) message a user sent to the official account."""

    account_id: str
    open_id: str  # channel-scoped user id
    text: str
    message_id: str
    timestamp: int  # ms
    agent_id: str = ""  # empty: resolve from account config + pairing state
    image_path: str | None = None  # local file downloaded from the platform


@dataclass
class Attachment:
    type: str
    url: str
    content_type: str = ""


@dataclass
class InboundEnvelope:
    """Normalized inbound message handed to the agent runtime."""

    body: str  # formatted for the model
    raw_body: str  # text plus media marker, unformatted
    command_body: str  # exactly what the user typed
    from_address: str
    to_address: str
    session_key: str
    account_id: str
    sender_id: str
    message_sid: str
    timestamp: int
    agent_id: str
    chat_type: str = "direct"
    provider: str = CHANNEL_ID
    conversation_label: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    media_urls: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReplyPayload:
    """One block of agent output to deliver."""

    text: str = ""
    media_urls: list[str] = field(default_factory=list)

    @classmethod
    def coerce(cls, payload: Any) -> ReplyPayload:
        """Accept a ReplyPayload, a plain string, or a ``{text|content, mediaUrl(s)}`` dict."""
        if isinstance(payload, ReplyPayload):
            return payload
        if isinstance(payload, str):
            return cls(text=payload)
        if isinstance(payload, dict):
            text = payload.get("text") or payload.get("content") or ""
            media = payload.get("media_urls") or payload.get("mediaUrls")
            if media is None:
                single = payload.get("media_url") or payload.get("mediaUrl")
                media = [single] if single else []
            return cls(text=str(text), media_urls=[str(m) for m in media if m])
        return cls(text=str(getattr(payload, "text", "") or ""))


@dataclass
class DispatchOutcome:
    queued_final: bool = False


@dataclass
class DeliveryContext:
    """Where replies for a session should go (last-route bookkeeping)."""

    channel: str
    to: str
    account_id: str


@dataclass
class RouteInfo:
    main_session_key: str | None = None


@dataclass
class CommandRequest:
    command: str
    account_id: str
    session_key: str
    sender_id: str
    agent_id: str
    channel: str = CHANNEL_ID
