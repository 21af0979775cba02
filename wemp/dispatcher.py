"""Message router: hand one inbound message to the agent and deliver its reply."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from wemp.config.schema import WempAccountConfig
from wemp.constants import CHANNEL_ID
from wemp.envelope import (
    Attachment,
    CommandRequest,
    DeliveryContext,
    InboundEnvelope,
    InboundMessage,
    ReplyPayload,
)
from wemp.image_processor import process_images_in_text
from wemp.outbound import OutboundDispatcher
from wemp.pairing import PairingRegistry
from wemp.runtime import (
    ActivityRecorder,
    AgentRuntime,
    ChannelSender,
    CommandHandler,
    EnvelopeFormatter,
    RouteResolver,
    SessionMetadataWriter,
)

FAILURE_REPLY = "抱歉，处理消息时出现错误，请稍后再试。"


def session_key_for(agent_id: str, account_id: str, open_id: str) -> str:
    return f"{CHANNEL_ID}:{agent_id}:{account_id}:{open_id}"


def main_session_key_for(account_id: str, open_id: str) -> str:
    return f"{CHANNEL_ID}:{account_id}:{open_id}"


def resolve_agent_id(
    account: WempAccountConfig,
    open_id: str,
    pairing: PairingRegistry | None,
    account_id: str,
) -> str | None:
    """Pick the agent for a user: main agent if trusted, else the cs agent.

    Returns None when the user may not talk to any agent.
    """
    if account.dm_policy == "open":
        return account.main_agent_id
    if open_id in account.allow_from:
        return account.main_agent_id
    if pairing is not None and pairing.is_paired(account_id, open_id):
        return account.main_agent_id
    if account.cs_agent.enabled:
        return account.cs_agent.agent_id
    return None


class MessageRouter:
    """Routes inbound messages for one account through the agent runtime."""

    def __init__(
        self,
        account_id: str,
        account: WempAccountConfig,
        sender: ChannelSender,
        runtime: AgentRuntime,
        *,
        runtime_config: Any = None,
        pairing: PairingRegistry | None = None,
        outbound: OutboundDispatcher | None = None,
        commands: CommandHandler | None = None,
        activity: ActivityRecorder | None = None,
        formatter: EnvelopeFormatter | None = None,
        sessions: SessionMetadataWriter | None = None,
        routes: RouteResolver | None = None,
    ) -> None:
        self.account_id = account_id
        self.account = account
        self.sender = sender
        self.runtime = runtime
        self.runtime_config = runtime_config
        self.pairing = pairing
        self.outbound = outbound or OutboundDispatcher(sender, account_id=account_id)
        self.commands = commands
        self.activity = activity
        self.formatter = formatter
        self.sessions = sessions
        self.routes = routes

    @property
    def _tag(self) -> str:
        return f"[wemp:{self.account_id}]"

    # ------------------------------------------------------------------
    # Best-effort side steps
    # ------------------------------------------------------------------

    def _record_activity(self, direction: str) -> None:
        if self.activity is None:
            return
        try:
            self.activity.record(CHANNEL_ID, self.account_id, direction)
        except Exception as exc:
            logger.warning(f"{self._tag} Recording {direction} activity failed: {exc}")

    async def _best_effort(self, label: str, step: Callable[[], Awaitable[None]]) -> None:
        try:
            await step()
        except Exception as exc:
            logger.warning(f"{self._tag} {label} failed: {exc}")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _try_control_command(self, msg: InboundMessage, agent_id: str) -> bool:
        if self.commands is None:
            return False
        try:
            if not self.commands.is_control_command(msg.text):
                return False
            logger.info(f"{self._tag} Control command: {msg.text}")

            async def _deliver(response: str) -> None:
                await self.sender.send_text(msg.open_id, response)

            request = CommandRequest(
                command=msg.text,
                account_id=self.account_id,
                session_key=session_key_for(agent_id, self.account_id, msg.open_id),
                sender_id=msg.open_id,
                agent_id=agent_id,
            )
            handled = await self.commands.dispatch(request, _deliver)
        except Exception as exc:
            logger.warning(f"{self._tag} Control command failed: {exc}")
            return False
        if handled:
            logger.info(f"{self._tag} Control command handled")
        return bool(handled)

    def _build_envelope(self, msg: InboundMessage, agent_id: str, session_key: str) -> InboundEnvelope:
        message_text = msg.text
        if msg.image_path:
            message_text = f"[图片: {msg.image_path}]\n\n{msg.text}"

        body = message_text
        if self.formatter is not None:
            try:
                body = self.formatter.format_inbound(
                    channel=CHANNEL_ID.upper(),
                    sender_id=msg.open_id,
                    timestamp=msg.timestamp,
                    body=message_text,
                ) or message_text
            except Exception as exc:
                logger.warning(f"{self._tag} Envelope formatting failed: {exc}")

        address = f"{CHANNEL_ID}:{msg.open_id}"
        envelope = InboundEnvelope(
            body=body,
            raw_body=message_text,
            command_body=msg.text,
            from_address=address,
            to_address=address,
            session_key=session_key,
            account_id=self.account_id,
            sender_id=msg.open_id,
            message_sid=msg.message_id,
            timestamp=msg.timestamp,
            agent_id=agent_id,
            conversation_label=msg.open_id,
        )
        if msg.image_path:
            envelope.attachments = [Attachment(type="image", url=msg.image_path, content_type="image/jpeg")]
            envelope.media_urls = [msg.image_path]
        return envelope

    async def deliver(self, open_id: str, payload: ReplyPayload | dict[str, Any] | str) -> None:
        """Deliver one reply block: text chunks first, then images."""
        reply = ReplyPayload.coerce(payload)

        try:
            await self.sender.send_typing(open_id)
        except Exception:
            pass

        processed = process_images_in_text(reply.text)
        if processed.text:
            result = await self.outbound.send_text(open_id, processed.text)
            if not result.ok:
                logger.warning(f"{self._tag} Reply text not fully delivered: {result.error}")

        image_urls = list(dict.fromkeys([*reply.media_urls, *processed.image_urls]))
        if image_urls:
            await self.outbound.send_images(open_id, image_urls)

        self._record_activity("outbound")

    async def dispatch(self, msg: InboundMessage) -> None:
        agent_id = msg.agent_id or resolve_agent_id(self.account, msg.open_id, self.pairing, self.account_id)
        if not agent_id:
            logger.info(f"{self._tag} No agent available for {msg.open_id}, dropping message")
            return

        if await self._try_control_command(msg, agent_id):
            return

        self._record_activity("inbound")

        session_key = session_key_for(agent_id, self.account_id, msg.open_id)
        main_session_key = main_session_key_for(self.account_id, msg.open_id)
        if self.routes is not None:
            try:
                route = self.routes.resolve(CHANNEL_ID, self.account_id, msg.open_id)
                if route.main_session_key:
                    main_session_key = route.main_session_key
            except Exception as exc:
                logger.warning(f"{self._tag} Route resolution failed: {exc}")

        logger.info(f"{self._tag} Route: agent_id={agent_id}, session_key={session_key}")

        envelope = self._build_envelope(msg, agent_id, session_key)

        if self.sessions is not None:
            sessions = self.sessions
            await self._best_effort(
                "Session metadata",
                lambda: sessions.record_inbound(agent_id, session_key, envelope),
            )
            delivery = DeliveryContext(channel=CHANNEL_ID, to=msg.open_id, account_id=self.account_id)
            await self._best_effort(
                "Last route update",
                lambda: sessions.update_last_route(agent_id, main_session_key, delivery, envelope),
            )

        async def _deliver(payload: ReplyPayload | dict[str, Any] | str) -> None:
            await self.deliver(msg.open_id, payload)

        def _on_error(error: BaseException, info: dict[str, Any]) -> None:
            kind = (info or {}).get("kind", "reply")
            logger.error(f"{self._tag} {kind} failed: {error}")

        try:
            outcome = await self.runtime.dispatch_reply(
                envelope,
                self.runtime_config,
                deliver=_deliver,
                on_error=_on_error,
            )
            if not outcome.queued_final:
                logger.info(f"{self._tag} No reply generated")
        except Exception as exc:
            logger.opt(exception=exc).error(f"{self._tag} Message dispatch failed: {exc}")
            result = await self.sender.send_text(msg.open_id, FAILURE_REPLY)
            if not result.ok:
                logger.warning(f"{self._tag} Could not send failure notice: {result.error}")
