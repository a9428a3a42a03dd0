"""Top-level decision for one inbound message.

Conversation state is never stored. Every call re-reads the thread and works
out where the user is (new thread, onboarding, steady state) from history.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone

from switchboard.channels.outbound import OutboundRouter
from switchboard.config import Settings
from switchboard.conversation.history import ThreadHistory, to_chat_messages
from switchboard.exceptions import (
    DeliveryError,
    HistoryUnavailableError,
    ProviderError,
    ProviderTimeout,
)
from switchboard.llm.client import OllamaClient
from switchboard.models import (
    CanonicalMessage,
    ConversationState,
    ThreadType,
    TriageAction,
    TriageResult,
)
from switchboard.onboarding.classifier import MessageClassifier, default_classifier
from switchboard.onboarding.extractor import OnboardingStatus, onboarding_status, scan_history
from switchboard.onboarding.fields import FieldDefinition, OnboardingConfig
from switchboard.onboarding.prompt_builder import (
    SystemInstruction,
    build_onboarding_prompt,
    build_system_prompt,
)
from switchboard.triage.detectors import (
    WELCOME_CONFIRMATION,
    find_email_address,
    is_identity_request,
    is_unmentioned_group_message,
    requests_email,
    welcome_email_target,
)

logger = logging.getLogger(__name__)

GENERIC_FALLBACK = "Sorry, I encountered an error processing your message."

# Thread messages an email draft is written from
EMAIL_CONTEXT_MESSAGES = 5

_WELCOME_EMAIL_PROMPT = (
    "You are {agent_name}. Write a short, friendly welcome email to the person at "
    "{address}. Introduce yourself, say you're happy to help and invite them to reply "
    "with any questions. Output only the email body, without a subject line."
)

_EMAIL_DRAFT_PROMPT = (
    "You are {agent_name}. The user asked you to write an email to {address}. Write it "
    "from the conversation so far. Answer in exactly this format and nothing else:\n"
    "SUBJECT: <subject line>\n"
    "BODY:\n"
    "<email body>"
)

_IDENTITY_PROMPT = (
    "{system_prompt}\n\nYour name is {agent_name}. The user wants to know who you are. "
    "Introduce yourself briefly and state your purpose."
)

_NO_ONBOARDING = OnboardingConfig(enabled=False)

_SUBJECT_LINE = re.compile(r"^\s*SUBJECT:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_BODY_BLOCK = re.compile(r"^\s*BODY:\s*(.*)\Z", re.IGNORECASE | re.MULTILINE | re.DOTALL)


def parse_email_draft(text: str) -> tuple[str, str]:
    """Split a SUBJECT:/BODY: draft into (subject, body).

    Without a BODY: marker everything but the subject line is the body.
    """
    subject_match = _SUBJECT_LINE.search(text)
    subject = subject_match.group(1).strip() if subject_match else ""
    body_match = _BODY_BLOCK.search(text)
    if body_match:
        body = body_match.group(1).strip()
    else:
        body = _SUBJECT_LINE.sub("", text).strip()
    return subject or "No subject", body


class TriageRouter:
    def __init__(
        self,
        history: ThreadHistory,
        llm: OllamaClient,
        outbound: OutboundRouter,
        settings: Settings,
        onboarding: OnboardingConfig,
        group_onboarding: OnboardingConfig | None = None,
        classifier: MessageClassifier | None = None,
    ):
        self._history = history
        self._llm = llm
        self._outbound = outbound
        self._settings = settings
        self._onboarding = onboarding
        self._group_onboarding = group_onboarding or _NO_ONBOARDING
        self._classifier = classifier or default_classifier

    def _onboarding_for(self, message: CanonicalMessage) -> OnboardingConfig:
        if message.thread_type == ThreadType.GROUP:
            return self._group_onboarding
        return self._onboarding

    async def triage(self, message: CanonicalMessage) -> TriageResult:
        """Decide how to answer a message.

        HistoryUnavailableError propagates: without history the state cannot
        be known and the delivery must be retried upstream. Every other failure
        degrades to a fallback reply.
        """
        if message.sender_is_agent:
            return TriageResult(action=TriageAction.SUPPRESSED, route="loop_guard")

        # The whole thread: onboarding answers can be arbitrarily old
        history = await self._history.get_history(message.thread_id)

        try:
            return await self._decide(message, history)
        except HistoryUnavailableError:
            raise
        except ProviderError as e:
            logger.warning("LLM failed for thread %s: %s", message.thread_id, e)
            return TriageResult(
                action=TriageAction.REPLY,
                reply_text=self._settings.fallback_reply,
                route="fallback",
            )
        except Exception:
            logger.exception("Triage failed for thread %s", message.thread_id)
            return TriageResult(
                action=TriageAction.REPLY, reply_text=GENERIC_FALLBACK, route="fallback"
            )

    async def _decide(
        self, message: CanonicalMessage, history: list[CanonicalMessage]
    ) -> TriageResult:
        ids = [m.id for m in history]
        if message.id in ids:
            # Storage order up to the trigger; anything stored after it is a later turn
            history = history[: ids.index(message.id) + 1]
        else:
            history = [m for m in history if m.created_at <= message.created_at]
            history.append(message)
        prior = history[:-1]

        config = self._onboarding_for(message)
        if config.enabled and config.required_fields:
            status = onboarding_status(prior, config.fields, self._classifier)
            if status != OnboardingStatus.COMPLETE:
                is_new = not any(m.sender_is_agent for m in prior)
                return await self._onboard(message, history, config, is_new)

        return await self._steady_state(message, history, config)

    async def _onboard(
        self,
        message: CanonicalMessage,
        history: list[CanonicalMessage],
        config: OnboardingConfig,
        is_new: bool,
    ) -> TriageResult:
        fields = config.fields
        result = scan_history(history, fields, self._classifier)
        instruction = build_onboarding_prompt(fields, result.snapshot, config)
        logger.info(
            "Onboarding thread %s: %s %s",
            message.thread_id, instruction.kind, instruction.field_key or "",
        )
        text = await self._generate(
            instruction.text, self._recent(history), message.thread_type
        )
        if instruction.kind == "ask":
            text = self._ensure_asks_field(text, instruction, fields)
            route = "onboarding"
        else:
            route = "onboarding_complete"
        return TriageResult(
            action=TriageAction.REPLY,
            reply_text=text,
            route=route,
            state=ConversationState.NEW_THREAD if is_new else ConversationState.ONBOARDING,
        )

    def _ensure_asks_field(
        self, text: str, instruction: SystemInstruction, fields: list[FieldDefinition]
    ) -> str:
        """Make sure the reply is recognizable as a question for the target field.

        The next turn reconstructs the pending field from this text, so a reply
        that never names the field would lose the question.
        """
        if instruction.field_key in self._classifier.referenced_fields(text, fields):
            return text
        target = next(f for f in fields if f.field_key == instruction.field_key)
        return f"{text}\n\nCould you share your {target.label.lower()}?"

    def _recent(self, history: list[CanonicalMessage]) -> list[CanonicalMessage]:
        return history[-self._settings.conversation_max_messages:]

    async def _steady_state(
        self,
        message: CanonicalMessage,
        history: list[CanonicalMessage],
        config: OnboardingConfig,
    ) -> TriageResult:
        settings = self._settings
        state = ConversationState.STEADY_STATE

        if is_unmentioned_group_message(
            message, settings.respond_only_when_mentioned, settings.agent_name, settings.mention_aliases
        ):
            logger.info("Agent not mentioned in group %s, no reply", message.thread_id)
            return TriageResult(action=TriageAction.SUPPRESSED, route="mention_gate", state=state)

        if is_identity_request(message.text):
            return await self._send_identity(message)

        if settings.email_action_enabled and requests_email(message.text):
            return await self._send_requested_email(message, history)

        if settings.welcome_email_enabled:
            address = welcome_email_target(message, history)
            if address is not None:
                return await self._send_welcome_email(address)

        fields = config.fields
        snapshot = (
            scan_history(history, fields, self._classifier).snapshot
            if config.enabled
            else {}
        )
        system_prompt = build_system_prompt(
            settings.system_prompt,
            snapshot,
            fields,
            settings.agent_name,
            datetime.now(timezone.utc).strftime("%Y-%m-%d"),
        )
        text = await self._generate(system_prompt, self._recent(history), message.thread_type)
        return TriageResult(action=TriageAction.REPLY, reply_text=text, route="default", state=state)

    async def _send_identity(self, message: CanonicalMessage) -> TriageResult:
        settings = self._settings
        text = await self._generate(
            _IDENTITY_PROMPT.format(
                system_prompt=settings.system_prompt, agent_name=settings.agent_name
            ),
            [message],
            message.thread_type,
        )
        if settings.agent_identity_card_url:
            text = (
                f"{text}\n\nHere's my identity card for verification: "
                f"{settings.agent_identity_card_url}"
            )
        logger.info("Identity card sent in thread %s", message.thread_id)
        return TriageResult(
            action=TriageAction.HANDED_OFF,
            reply_text=text,
            route="identity",
            state=ConversationState.STEADY_STATE,
        )

    async def _send_requested_email(
        self, message: CanonicalMessage, history: list[CanonicalMessage]
    ) -> TriageResult:
        settings = self._settings
        address = find_email_address(message.text)
        if address is None:
            return TriageResult(
                action=TriageAction.REPLY,
                reply_text="Sure! Who should I send it to? Please share their email address.",
                route="email_action",
                state=ConversationState.STEADY_STATE,
            )

        draft = await self._generate(
            _EMAIL_DRAFT_PROMPT.format(agent_name=settings.agent_name, address=address),
            history[-EMAIL_CONTEXT_MESSAGES:],
            message.thread_type,
        )
        subject, body = parse_email_draft(draft)
        if not body:
            raise ProviderError("Email draft has no body")

        try:
            await self._outbound.send_email(address, subject, body)
        except DeliveryError as e:
            logger.error("Requested email to %s failed: %s", address, e)
            return self._email_failed(address, "email_action")
        logger.info("Requested email sent to %s (%s)", address, subject)
        return TriageResult(
            action=TriageAction.HANDED_OFF,
            reply_text=f"Email sent to {address}.\nSubject: {subject}",
            route="email_action",
            state=ConversationState.STEADY_STATE,
        )

    async def _send_welcome_email(self, address: str) -> TriageResult:
        settings = self._settings
        body = await self._generate(
            _WELCOME_EMAIL_PROMPT.format(agent_name=settings.agent_name, address=address),
            [],
            ThreadType.INDIVIDUAL,
        )
        try:
            await self._outbound.send_email(address, settings.welcome_email_subject, body)
        except DeliveryError as e:
            logger.error("Welcome email to %s failed: %s", address, e)
            return self._email_failed(address, "welcome_email")
        logger.info("Welcome email sent to %s", address)
        return TriageResult(
            action=TriageAction.HANDED_OFF,
            reply_text=WELCOME_CONFIRMATION.format(address=address),
            route="welcome_email",
            state=ConversationState.STEADY_STATE,
        )

    @staticmethod
    def _email_failed(address: str, route: str) -> TriageResult:
        return TriageResult(
            action=TriageAction.REPLY,
            reply_text=f"I wasn't able to send an email to {address} just now. Please try again later.",
            route=route,
            state=ConversationState.STEADY_STATE,
        )

    async def _generate(
        self,
        system_instruction: str,
        history: list[CanonicalMessage],
        thread_type: ThreadType,
    ) -> str:
        chat = to_chat_messages(history, thread_type)
        try:
            return await asyncio.wait_for(
                self._llm.complete(system_instruction, chat),
                timeout=self._settings.llm_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(
                f"No completion within {self._settings.llm_timeout_seconds}s"
            ) from e
