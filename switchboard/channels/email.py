from __future__ import annotations

import logging

from switchboard.channels.base import MessagingApiClient
from switchboard.models import Channel, DeliveryReceipt

logger = logging.getLogger(__name__)


class EmailClient(MessagingApiClient):
    channel = Channel.EMAIL

    def __init__(self, *args, sender_address: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self._sender_address = sender_address

    async def send_email(self, to: str, subject: str, body: str) -> DeliveryReceipt:
        payload = {
            "sender_address": self._sender_address,
            "recipient_address": to,
            "subject": subject,
            "body": body,
            "headers": {},
        }
        receipt = await self._post(f"emails/{self._account_id}/send", payload, to)
        logger.info("Outgoing email [%s]: %s", to, subject[:80])
        return receipt
