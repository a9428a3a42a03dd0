from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from switchboard.channels.outbound import OutboundRouter
from switchboard.conversation.history import ThreadHistory
from switchboard.exceptions import DeliveryError
from switchboard.models import CanonicalMessage, Channel, DeliveryReceipt, ThreadType

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    message: CanonicalMessage
    delivered: bool
    stored: bool
    receipt: DeliveryReceipt | None = None


def reply_subject(subject: str | None) -> str:
    subject = (subject or "").strip()
    if not subject:
        return "Re: your message"
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


class ReplyDispatcher:
    def __init__(
        self,
        history: ThreadHistory,
        outbound: OutboundRouter,
        agent_name: str = "Assistant",
        agent_number: str = "",
        agent_email: str = "",
    ):
        self._history = history
        self._outbound = outbound
        self._agent_name = agent_name
        self._agent_number = agent_number
        self._agent_email = agent_email
        self._in_flight: set[tuple[str, str]] = set()

    async def record_inbound(self, message: CanonicalMessage) -> bool:
        """Persist an inbound message and claim it for processing.

        Returns False when the message was already answered or another delivery
        of it is being processed. A stored message that never got an answer (an
        earlier attempt failed part way) is claimed again.
        """
        key = (message.thread_id, message.id)
        if key in self._in_flight:
            logger.info("Delivery %s already in progress in thread %s", message.id, message.thread_id)
            return False
        self._in_flight.add(key)
        try:
            seq = await self._history.append(message)
            if seq is None and await self._history.is_handled(message.thread_id, message.id):
                logger.info("Duplicate delivery %s in thread %s", message.id, message.thread_id)
                self._in_flight.discard(key)
                return False
        except Exception:
            self._in_flight.discard(key)
            raise
        if seq is None:
            logger.warning(
                "Redelivery of unanswered message %s in thread %s, processing again",
                message.id, message.thread_id,
            )
        return True

    async def release(self, message: CanonicalMessage, handled: bool) -> None:
        """Drop the claim taken by record_inbound; mark the message answered when handled."""
        try:
            if handled:
                await self._history.mark_handled(message.thread_id, message.id)
        finally:
            self._in_flight.discard((message.thread_id, message.id))

    def is_loop(self, message: CanonicalMessage) -> bool:
        """Agent-authored messages (including provider echoes) are never triaged."""
        return message.sender_is_agent

    def _agent_sender_id(self, channel: Channel) -> str | None:
        if channel == Channel.EMAIL:
            return self._agent_email.lower() or None
        if channel in (Channel.WHATSAPP, Channel.SMS):
            return self._agent_number.lstrip("+") or None
        return None

    async def dispatch(self, inbound: CanonicalMessage, reply_text: str) -> DispatchResult:
        """Send a reply through the inbound channel and store it as an agent message.

        A failed send is logged and the reply is still stored with
        delivered=False so later extraction sees what the agent meant to say.
        """
        if inbound.thread_type == ThreadType.GROUP or inbound.channel == Channel.WEB:
            recipient = inbound.thread_id
        else:
            recipient = inbound.sender_id or inbound.thread_id
        subject = reply_subject(inbound.subject) if inbound.channel == Channel.EMAIL else None

        receipt: DeliveryReceipt | None = None
        try:
            receipt = await self._outbound.send(
                inbound.channel, recipient, reply_text, inbound.thread_type, subject
            )
        except DeliveryError as e:
            logger.error("Reply to thread %s not delivered: %s", inbound.thread_id, e)

        delivered = receipt is not None and receipt.delivered
        message_id = (receipt.external_id if receipt else None) or f"agent-{uuid.uuid4().hex}"

        reply = CanonicalMessage(
            id=message_id,
            thread_id=inbound.thread_id,
            thread_type=inbound.thread_type,
            sender_id=self._agent_sender_id(inbound.channel),
            sender_name=self._agent_name,
            sender_is_agent=True,
            text=reply_text,
            channel=inbound.channel,
            # Same clock as the inbound; storage order breaks the tie
            created_at=inbound.created_at,
            subject=subject,
        )
        stored = await self._history.append(reply, delivered=delivered) is not None
        if not stored:
            logger.info("Reply %s already stored for thread %s", message_id, inbound.thread_id)
        return DispatchResult(message=reply, delivered=delivered, stored=stored, receipt=receipt)
