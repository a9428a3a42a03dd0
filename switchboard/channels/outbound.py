from __future__ import annotations

import logging

from switchboard.channels.email import EmailClient
from switchboard.channels.sms import SmsClient
from switchboard.channels.whatsapp import CloudApiClient, WhatsAppClient
from switchboard.models import Channel, DeliveryReceipt, ThreadType

logger = logging.getLogger(__name__)


class OutboundRouter:
    """Picks the adapter for a channel and sends one reply through it.

    Raises DeliveryError when the adapter fails. Web chat has no outbound
    transport: the persisted agent message is what the web UI reads.
    """

    def __init__(
        self,
        whatsapp: WhatsAppClient,
        sms: SmsClient,
        email: EmailClient,
        cloud_api: CloudApiClient | None = None,
    ):
        self._whatsapp = whatsapp
        self._sms = sms
        self._email = email
        self._cloud_api = cloud_api

    async def send(
        self,
        channel: Channel,
        recipient: str,
        text: str,
        thread_type: ThreadType = ThreadType.INDIVIDUAL,
        subject: str | None = None,
    ) -> DeliveryReceipt:
        if channel == Channel.WHATSAPP:
            # Cloud API has no group messaging
            if (
                thread_type == ThreadType.INDIVIDUAL
                and self._cloud_api is not None
                and self._cloud_api.configured
            ):
                return await self._cloud_api.send_message(recipient, text)
            return await self._whatsapp.send_message(recipient, text, thread_type)
        if channel == Channel.SMS:
            return await self._sms.send_message(recipient, text)
        if channel == Channel.EMAIL:
            return await self._email.send_email(recipient, subject or "", text)

        logger.debug("Web reply for %s stored without outbound send", recipient)
        return DeliveryReceipt(channel=channel, recipient=recipient)

    async def send_email(self, to: str, subject: str, body: str) -> DeliveryReceipt:
        return await self._email.send_email(to, subject, body)
