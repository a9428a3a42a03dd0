"""Steady-state detectors, checked in priority order before the default reply."""

from __future__ import annotations

import re
from functools import lru_cache

from switchboard.models import CanonicalMessage, ThreadType

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Generic ways people address a bot in a group
_GENERIC_MENTIONS = ("ai", "assistant", "bot")

WELCOME_CONFIRMATION = "I've sent a welcome email to {address}."

IDENTITY_PATTERN = re.compile(
    r"\bwho\s+(?:are|r)\s+(?:you|u)\b"
    r"|\bwhat\s+are\s+you\s*(?:\?|$)"
    r"|\b(?:introduce|identify)\s+yourself\b"
    r"|\bare\s+you\s+(?:a\s+|an\s+)?(?:bot|robot|human|real|ai)\b"
    r"|\byour\s+identity\b",
    re.IGNORECASE,
)

# "send an email to ...", "draft a quick email", "email this to ..."
EMAIL_REQUEST_PATTERN = re.compile(
    r"\b(?:send|write|draft|compose)\b[^.?!\n]{0,40}?\be-?mails?\b"
    r"|\be-?mail\s+(?:this|that|it|them|him|her)\b",
    re.IGNORECASE,
)


@lru_cache(maxsize=128)
def _mention_pattern(term: str) -> re.Pattern[str]:
    return re.compile(r"(?<![\w])@?" + re.escape(term) + r"(?![\w])", re.IGNORECASE)


def mentions_agent(text: str, agent_name: str, aliases: list[str] | tuple[str, ...] = ()) -> bool:
    terms = [agent_name, *aliases, *_GENERIC_MENTIONS]
    return any(_mention_pattern(t.strip()).search(text) for t in terms if t and t.strip())


def is_unmentioned_group_message(
    message: CanonicalMessage,
    respond_only_when_mentioned: bool,
    agent_name: str,
    aliases: list[str] | tuple[str, ...] = (),
) -> bool:
    """True when a group reply should be suppressed because nobody addressed the agent."""
    if not respond_only_when_mentioned or message.thread_type != ThreadType.GROUP:
        return False
    return not mentions_agent(message.text, agent_name, aliases)


def find_email_address(text: str) -> str | None:
    match = EMAIL_PATTERN.search(text or "")
    return match.group(0).lower() if match else None


def welcome_email_target(
    message: CanonicalMessage, history: list[CanonicalMessage]
) -> str | None:
    """Address to send a welcome email to, or None.

    The message must contain a bare email address and the agent must not have
    already confirmed a welcome email to that address in this thread.
    """
    address = find_email_address(message.text)
    if address is None:
        return None
    confirmation = WELCOME_CONFIRMATION.format(address=address).lower()
    for msg in history:
        if msg.sender_is_agent and confirmation in msg.text.lower():
            return None
    return address


def is_identity_request(text: str) -> bool:
    """The user asks who or what the agent is."""
    return bool(IDENTITY_PATTERN.search(text or ""))


def requests_email(text: str) -> bool:
    """The user asks the agent to write or send an email."""
    return bool(EMAIL_REQUEST_PATTERN.search(text or ""))
