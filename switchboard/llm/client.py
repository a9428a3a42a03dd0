from __future__ import annotations

import logging
import re

import httpx

from switchboard.exceptions import ProviderError, ProviderTimeout
from switchboard.models import ChatMessage

logger = logging.getLogger(__name__)


def strip_think(content: str) -> str:
    """Remove deepseek/qwen reasoning blocks: <think>...</think>."""
    content = re.sub(r"<think>.*?</think>\n*", "", content, flags=re.DOTALL)
    # Edge-cases if the LLM gets truncated exactly after opening or closing tags
    content = content.split("</think>")[-1]
    return content.split("<think>")[0].strip()


class OllamaClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        model: str,
    ):
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._model = model

    async def chat(self, messages: list[ChatMessage], model: str | None = None) -> str:
        url = f"{self._base_url}/api/chat"
        use_model = model or self._model
        payload = {
            "model": use_model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": False,
            "think": False,
        }

        try:
            resp = await self._http.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Ollama did not answer in time: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Ollama request failed: {e}") from e

        if resp.status_code == 404:
            logger.error(
                "Ollama model '%s' not found, download it with: "
                "docker compose exec ollama ollama pull %s",
                use_model,
                use_model,
            )
        if resp.status_code != 200:
            raise ProviderError(f"Ollama returned {resp.status_code}: {resp.text[:200]}")

        try:
            content = resp.json()["message"].get("content", "") or ""
        except (ValueError, KeyError, AttributeError) as e:
            raise ProviderError(f"Unexpected Ollama response: {e}") from e

        logger.debug("LLM raw response: %s", content[:500])
        return strip_think(content)

    async def complete(self, system_instruction: str, history: list[ChatMessage]) -> str:
        """Generate a reply for a system instruction plus chat history.

        Raises ProviderTimeout / ProviderError; never returns empty text.
        """
        messages = [ChatMessage(role="system", content=system_instruction), *history]
        content = await self.chat(messages)
        if not content:
            raise ProviderError("Ollama returned an empty completion")
        logger.debug("LLM processed response: %s", content[:500])
        return content

    async def is_available(self) -> bool:
        try:
            resp = await self._http.get(
                f"{self._base_url}/api/tags",
                timeout=5.0,
            )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False
