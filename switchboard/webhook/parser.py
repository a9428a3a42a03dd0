"""Turn channel-specific webhook payloads into CanonicalMessage objects."""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timezone
from email import message_from_string, policy
from email.utils import parseaddr

from pydantic import ValidationError

from switchboard.exceptions import MalformedPayloadError
from switchboard.models import CanonicalMessage, Channel, ThreadType

logger = logging.getLogger(__name__)

_SUPPORTED_TYPES = {"text", "audio", "image"}
_REPLY_PREFIX = re.compile(r"^\s*((re|fwd?|aw)\s*:\s*)+", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_BLOCK_TAG = re.compile(r"<\s*(br|/p|/div|/li|/tr)[^>]*>", re.IGNORECASE)


def normalize_number(number: str | None) -> str:
    """Digits only: "+1 (555) 010-0000" -> "15550100000"."""
    return re.sub(r"\D", "", str(number or ""))


def parse_timestamp(value) -> datetime:
    """Parse epoch seconds, epoch milliseconds or ISO-8601 into an aware UTC datetime."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, str) and re.fullmatch(r"\d+(\.\d+)?", value.strip()):
        value = float(value)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("Out of range timestamp %r, using receive time", value)
            return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp %r, using receive time", value)
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _require(channel: Channel, **values) -> None:
    missing = [name for name, v in values.items() if not v]
    if missing:
        raise MalformedPayloadError(channel.value, missing)


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        for key in ("text", "caption", "message", "body"):
            value = content.get(key)
            if isinstance(value, str) and value:
                return value
    return ""


# --- WhatsApp ---


def normalize_whatsapp(payload: dict, agent_number: str = "") -> CanonicalMessage:
    """Normalize a messaging-provider WhatsApp payload.

    Group payloads for agent-sent messages report the sender as a bare "+";
    that placeholder is replaced with the agent's own number.
    """
    thread_type = (
        ThreadType.GROUP if payload.get("thread_type") == "group" else ThreadType.INDIVIDUAL
    )
    sender = str(payload.get("sender_number") or "")
    if sender.strip() == "+" and agent_number:
        sender = agent_number
    sender_id = normalize_number(sender)
    agent_id = normalize_number(agent_number)

    _require(
        Channel.WHATSAPP,
        thread_id=payload.get("thread_id"),
        message_id=payload.get("message_id"),
        sender_number=sender_id,
    )

    is_agent = bool(payload.get("is_from_agent")) or (bool(agent_id) and sender_id == agent_id)
    return CanonicalMessage(
        id=str(payload["message_id"]),
        thread_id=str(payload["thread_id"]),
        thread_type=thread_type,
        sender_id=sender_id,
        sender_name=payload.get("sender_name") or "",
        sender_is_agent=is_agent,
        text=_content_text(payload.get("message_content")).strip(),
        channel=Channel.WHATSAPP,
        created_at=parse_timestamp(payload.get("timestamp")),
    )


def extract_cloud_api_messages(payload: dict) -> list[dict]:
    """Split a WhatsApp Cloud API webhook batch into single provider-style payloads.

    Keeps text, audio and image messages; audio and image without a caption
    carry empty text. Status updates and other types are skipped.
    """
    messages: list[dict] = []
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            names = {
                c.get("wa_id"): c.get("profile", {}).get("name", "")
                for c in value.get("contacts", [])
            }
            for msg in value.get("messages", []):
                msg_type = msg.get("type")
                if msg_type not in _SUPPORTED_TYPES:
                    continue

                text = ""
                if msg_type == "text":
                    text = msg.get("text", {}).get("body", "")
                elif msg_type == "image":
                    text = msg.get("image", {}).get("caption") or ""

                sender = msg.get("from", "")
                messages.append(
                    {
                        "thread_id": sender,
                        "message_id": msg.get("id"),
                        "thread_type": "individual",
                        "sender_number": sender,
                        "sender_name": names.get(sender, ""),
                        "timestamp": msg.get("timestamp"),
                        "service": "whatsapp",
                        "message_type": msg_type,
                        "message_content": {"text": text},
                        "is_from_agent": False,
                    }
                )
    return messages


# --- SMS ---


def normalize_sms(payload: dict, agent_number: str = "") -> CanonicalMessage:
    """Normalize an SMS payload. message_content is a plain string.

    Without a thread id the conversation is keyed by the sender's number.
    """
    sender_id = normalize_number(payload.get("sender_number"))
    _require(Channel.SMS, message_id=payload.get("message_id"), sender_number=sender_id)

    agent_id = normalize_number(agent_number)
    is_agent = bool(payload.get("is_from_agent")) or (bool(agent_id) and sender_id == agent_id)
    return CanonicalMessage(
        id=str(payload["message_id"]),
        thread_id=str(payload.get("thread_id") or sender_id),
        thread_type=ThreadType.INDIVIDUAL,
        sender_id=sender_id,
        sender_name=payload.get("sender_name") or str(payload.get("sender_number") or sender_id),
        sender_is_agent=is_agent,
        text=_content_text(payload.get("message_content")).strip(),
        channel=Channel.SMS,
        created_at=parse_timestamp(payload.get("timestamp")),
    )


# --- Email ---


def html_to_text(html: str) -> str:
    text = _BLOCK_TAG.sub("\n", html)
    text = _TAG.sub("", text)
    text = re.sub(r"&nbsp;", " ", text)
    text = re.sub(r"[ \t]+", " ", text)
    return re.sub(r"\n\s*\n+", "\n\n", text).strip()


def extract_email_body(raw_email: str) -> tuple[str, str | None]:
    """Return (body text, From display name) from a raw RFC 822 message.

    Prefers text/plain, then text/html with tags stripped. Data that does not
    parse into a body is returned as-is.
    """
    if not raw_email:
        return "", None
    msg = message_from_string(raw_email, policy=policy.default)
    display_name = parseaddr(str(msg.get("From", "")))[0] or None

    part = msg.get_body(preferencelist=("plain", "html"))
    if part is None:
        return raw_email.strip(), display_name
    content = part.get_content()
    if part.get_content_subtype() == "html":
        content = html_to_text(content)
    return content.strip(), display_name


def email_thread_id(sender: str, recipient: str, subject: str | None) -> str:
    """Stable id for an email conversation, ignoring Re:/Fwd: prefixes."""
    base_subject = _REPLY_PREFIX.sub("", subject or "").strip().lower()
    parties = "|".join(sorted([sender.lower(), recipient.lower()]))
    digest = hashlib.sha256(f"{parties}|{base_subject}".encode()).hexdigest()
    return f"email-{digest[:24]}"


def normalize_email(payload: dict, agent_email: str = "") -> CanonicalMessage:
    sender = str(payload.get("sender_address") or "").strip().lower()
    _require(Channel.EMAIL, email_id=payload.get("email_id"), sender_address=sender)

    recipient = str(payload.get("recipient_address") or agent_email or "").strip().lower()
    subject = payload.get("subject") or ""
    body, display_name = extract_email_body(payload.get("raw_email_data") or "")
    if not body:
        body = _content_text(payload.get("body") or payload.get("text") or "")

    return CanonicalMessage(
        id=str(payload["email_id"]),
        thread_id=email_thread_id(sender, recipient, subject),
        thread_type=ThreadType.INDIVIDUAL,
        sender_id=sender,
        sender_name=display_name or sender.split("@")[0],
        sender_is_agent=bool(agent_email) and sender == agent_email.strip().lower(),
        text=body,
        channel=Channel.EMAIL,
        created_at=parse_timestamp(payload.get("timestamp")),
        subject=subject or None,
    )


# --- Web chat ---


def normalize_web(payload: dict) -> CanonicalMessage:
    thread_id = payload.get("thread_id") or payload.get("chat_id")
    _require(
        Channel.WEB,
        thread_id=thread_id,
        message_id=payload.get("message_id"),
        user_id=payload.get("user_id"),
    )
    return CanonicalMessage(
        id=str(payload["message_id"]),
        thread_id=str(thread_id),
        thread_type=ThreadType.GROUP if payload.get("thread_type") == "group" else ThreadType.INDIVIDUAL,
        sender_id=str(payload["user_id"]),
        sender_name=payload.get("user_name") or "",
        sender_is_agent=bool(payload.get("is_agent")),
        text=_content_text(payload.get("content")).strip(),
        channel=Channel.WEB,
        created_at=parse_timestamp(payload.get("timestamp")),
    )


def normalize(channel: Channel, payload: dict, settings) -> CanonicalMessage:
    """Dispatch a payload to the normalizer for its channel."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError(channel.value, ["payload"])
    try:
        if channel == Channel.WHATSAPP:
            return normalize_whatsapp(payload, settings.agent_number)
        if channel == Channel.SMS:
            return normalize_sms(payload, settings.agent_number)
        if channel == Channel.EMAIL:
            return normalize_email(payload, settings.agent_email)
        return normalize_web(payload)
    except ValidationError as e:
        # Fields present but of the wrong type
        bad = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise MalformedPayloadError(channel.value, bad) from e
