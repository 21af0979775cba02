"""Interfaces of the collaborators around the message router.

Only :class:`ChannelSender` and :class:`AgentRuntime` are required; every
other capability is optional and its absence (``None``) just skips that step.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from wemp.envelope import (
    CommandRequest,
    DeliveryContext,
    DispatchOutcome,
    InboundEnvelope,
    ReplyPayload,
    RouteInfo,
)
from wemp.errors import Result

DeliverFn = Callable[[ReplyPayload | dict[str, Any] | str], Awaitable[None]]
ErrorFn = Callable[[BaseException, dict[str, Any]], None]


@runtime_checkable
class ChannelSender(Protocol):
    """The only channel-facing effects the core performs."""

    async def send_text(self, open_id: str, text: str) -> Result[None]: ...

    async def send_image_by_url(self, open_id: str, url: str) -> Result[None]: ...

    async def send_media(self, open_id: str, msg_type: str, media_id: str) -> Result[None]: ...

    async def send_typing(self, open_id: str) -> Result[None]: ...


class AgentRuntime(Protocol):
    async def dispatch_reply(
        self,
        envelope: InboundEnvelope,
        config: Any,
        *,
        deliver: DeliverFn,
        on_error: ErrorFn,
    ) -> DispatchOutcome: ...


class CommandHandler(Protocol):
    def is_control_command(self, text: str) -> bool: ...

    async def dispatch(
        self,
        request: CommandRequest,
        deliver: Callable[[str], Awaitable[None]],
    ) -> bool:
        """Run the command; True if it was handled."""
        ...


class ActivityRecorder(Protocol):
    def record(self, channel: str, account_id: str, direction: str) -> None: ...


class EnvelopeFormatter(Protocol):
    def format_inbound(
        self,
        channel: str,
        sender_id: str,
        timestamp: int,
        body: str,
        chat_type: str = "direct",
    ) -> str | None: ...


class SessionMetadataWriter(Protocol):
    async def record_inbound(self, agent_id: str, session_key: str, envelope: InboundEnvelope) -> None: ...

    async def update_last_route(
        self,
        agent_id: str,
        session_key: str,
        delivery: DeliveryContext,
        envelope: InboundEnvelope,
    ) -> None: ...


class RouteResolver(Protocol):
    def resolve(self, channel: str, account_id: str, peer_id: str) -> RouteInfo: ...
