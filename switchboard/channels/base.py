from __future__ import annotations

import logging

import httpx

from switchboard.exceptions import DeliveryError
from switchboard.models import Channel, DeliveryReceipt

logger = logging.getLogger(__name__)


class MessagingApiClient:
    """Shared transport for the messaging provider's REST API."""

    channel: Channel

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        api_secret: str,
        account_id: str,
    ):
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._api_secret = api_secret
        self._account_id = account_id

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self._api_key,
            "X-API-Secret": self._api_secret,
            "Content-Type": "application/json",
        }

    def _check_error(self, resp: httpx.Response, recipient: str) -> None:
        if resp.status_code < 400:
            return
        if resp.status_code == 401:
            logger.error(
                "Messaging API auth failed (401), check MESSAGING_API_KEY and MESSAGING_API_SECRET"
            )
        else:
            logger.error(
                "Send failed [%s] via %s %s: %s",
                recipient, self.channel.value, resp.status_code, resp.text[:200],
            )
        raise DeliveryError(self.channel.value, recipient, f"HTTP {resp.status_code}")

    async def _post(self, path: str, payload: dict, recipient: str) -> DeliveryReceipt:
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            resp = await self._http.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error("Send failed [%s] via %s: %s", recipient, self.channel.value, e)
            raise DeliveryError(self.channel.value, recipient, str(e)) from e
        self._check_error(resp, recipient)
        return DeliveryReceipt(
            channel=self.channel,
            recipient=recipient,
            external_id=receipt_id(resp),
        )


def receipt_id(resp: httpx.Response) -> str | None:
    """Pull the provider's message id out of a send response, if it has one."""
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    for key in ("message_id", "id", "email_id"):
        if data.get(key):
            return str(data[key])
    # Cloud API shape: {"messages": [{"id": "wamid..."}]}
    messages = data.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        return messages[0].get("id")
    return None


def e164(number: str) -> str:
    number = number.strip()
    return number if number.startswith("+") else f"+{number}"
