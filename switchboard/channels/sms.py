from __future__ import annotations

import logging

from switchboard.channels.base import MessagingApiClient, e164
from switchboard.models import Channel, DeliveryReceipt

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1200

# Unicode punctuation with GSM-7 friendly replacements
_GSM7_REPLACEMENTS = {
    "‘": "'", "’": "'", "“": '"', "”": '"',
    "—": "-", "–": "-", "…": "...", "•": "*",
    "™": "TM", "©": "(c)", "®": "(R)", "°": " degrees",
    "±": "+/-", "×": "x", "÷": "/", "→": "->", "←": "<-",
    "✓": "OK", "✔": "OK", "✗": "X", "✘": "X",
}


def sanitize_for_sms(text: str) -> str:
    for src, dst in _GSM7_REPLACEMENTS.items():
        text = text.replace(src, dst)
    if len(text) > MAX_SMS_LENGTH:
        text = text[: MAX_SMS_LENGTH - 3].rstrip() + "..."
    return text


class SmsClient(MessagingApiClient):
    channel = Channel.SMS

    def __init__(self, *args, agent_number: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self._agent_number = agent_number

    async def send_message(self, to: str, text: str) -> DeliveryReceipt:
        payload = {
            "content": {"message": sanitize_for_sms(text)},
            "from": e164(self._agent_number) if self._agent_number else "",
            "to": e164(to),
            "service": "sms",
        }
        receipt = await self._post(f"messages/individual/{self._account_id}/send", payload, to)
        logger.info("Outgoing SMS [%s]: %s", to, text[:80])
        return receipt
