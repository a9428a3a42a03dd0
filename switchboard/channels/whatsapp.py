from __future__ import annotations

import logging

import httpx

from switchboard.channels.base import MessagingApiClient, receipt_id, e164
from switchboard.exceptions import DeliveryError
from switchboard.models import Channel, DeliveryReceipt, ThreadType

logger = logging.getLogger(__name__)

GRAPH_API_URL = "https://graph.facebook.com/v22.0"


class WhatsAppClient(MessagingApiClient):
    """Sends WhatsApp messages through the messaging provider (individual and group)."""

    channel = Channel.WHATSAPP

    def __init__(self, *args, agent_number: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self._agent_number = agent_number

    async def send_message(
        self, to: str, text: str, thread_type: ThreadType = ThreadType.INDIVIDUAL
    ) -> DeliveryReceipt:
        payload: dict = {
            "content": text,
            "from": e164(self._agent_number) if self._agent_number else "",
            "service": "whatsapp",
        }
        if thread_type == ThreadType.GROUP:
            payload["thread_id"] = to
            path = f"messages/group/{self._account_id}/send"
        else:
            payload["to"] = e164(to)
            path = f"messages/individual/{self._account_id}/send"
        receipt = await self._post(path, payload, to)
        logger.info("Outgoing  [%s]: %s", to, text[:80])
        return receipt


class CloudApiClient:
    """Sends individual WhatsApp messages through the Meta Cloud API."""

    channel = Channel.WHATSAPP

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        access_token: str,
        phone_number_id: str,
    ):
        self._http = http_client
        self._access_token = access_token
        self._phone_number_id = phone_number_id

    @property
    def configured(self) -> bool:
        return bool(self._access_token and self._phone_number_id)

    @property
    def _base_url(self) -> str:
        return f"{GRAPH_API_URL}/{self._phone_number_id}"

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def _check_auth_error(self, resp: httpx.Response, to: str) -> None:
        if resp.status_code == 401:
            logger.error(
                "WhatsApp API auth failed (401), access token expired or invalid. "
                "Renew it at https://developers.facebook.com under WhatsApp > API Setup"
            )
        elif resp.status_code == 400 and "permission" in resp.text.lower():
            logger.error(
                "WhatsApp API permission error (400), the access token lacks "
                "'whatsapp_business_messaging' permission"
            )
        if resp.status_code >= 400:
            raise DeliveryError(self.channel.value, to, f"HTTP {resp.status_code}")

    async def send_message(self, to: str, text: str) -> DeliveryReceipt:
        url = f"{self._base_url}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": to.lstrip("+"),
            "type": "text",
            "text": {"body": text},
        }
        try:
            resp = await self._http.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise DeliveryError(self.channel.value, to, str(e)) from e
        if resp.status_code != 200:
            logger.error("Send failed [%s] %s: %s", to, resp.status_code, resp.text)
        self._check_auth_error(resp, to)
        logger.info("Outgoing  [%s]: %s", to, text[:80])
        return DeliveryReceipt(channel=self.channel, recipient=to, external_id=receipt_id(resp))
