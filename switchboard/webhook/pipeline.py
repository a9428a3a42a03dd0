from __future__ import annotations

import logging
from dataclasses import dataclass

from switchboard.dispatch.dispatcher import ReplyDispatcher
from switchboard.models import CanonicalMessage, TriageAction
from switchboard.triage.router import TriageRouter

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    status: str  # duplicate | agent_echo | suppressed | replied | handed-off
    reply_text: str | None = None
    route: str | None = None


async def process_inbound(
    message: CanonicalMessage,
    router: TriageRouter,
    dispatcher: ReplyDispatcher,
) -> PipelineOutcome:
    """Persist, triage and answer one normalized message.

    Every step is awaited; HistoryUnavailableError propagates so the caller
    can ask the provider to retry. The message only counts as answered once
    its reply is stored, so the retry runs the whole pipeline again.
    """
    logger.info(
        "Incoming [%s/%s] %s: %s",
        message.channel.value,
        message.thread_id,
        message.sender_id,
        message.text[:80] if message.text else "(empty)",
    )

    if not await dispatcher.record_inbound(message):
        return PipelineOutcome(status="duplicate")

    handled = False
    try:
        if dispatcher.is_loop(message):
            logger.debug("Agent echo %s stored, not triaged", message.id)
            handled = True
            return PipelineOutcome(status="agent_echo")

        result = await router.triage(message)
        if result.action == TriageAction.SUPPRESSED or not result.reply_text:
            handled = True
            return PipelineOutcome(status="suppressed", route=result.route)

        await dispatcher.dispatch(message, result.reply_text)
        handled = True
    finally:
        # An unhandled message stays claimable so a provider retry gets answered
        await dispatcher.release(message, handled)

    status = "handed-off" if result.action == TriageAction.HANDED_OFF else "replied"
    return PipelineOutcome(status=status, reply_text=result.reply_text, route=result.route)
