from __future__ import annotations

import logging

import aiosqlite

from switchboard.database.repository import Repository
from switchboard.exceptions import HistoryUnavailableError
from switchboard.models import CanonicalMessage, ChatMessage, ThreadType

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (aiosqlite.Error, OSError, ValueError)


class ThreadHistory:
    """Reads and appends thread history. Every read goes to storage."""

    def __init__(self, repository: Repository):
        self._repo = repository

    async def get_history(
        self, thread_id: str, limit: int | None = None
    ) -> list[CanonicalMessage]:
        """Return the thread's messages oldest first; the whole thread unless limit is set.

        Raises HistoryUnavailableError when storage cannot be read; callers must
        not guess at state in that case.
        """
        try:
            return await self._repo.get_thread_messages(thread_id, limit)
        except _STORAGE_ERRORS as e:
            logger.error("History read failed for thread %s: %s", thread_id, e)
            raise HistoryUnavailableError(thread_id, str(e)) from e

    async def append(self, message: CanonicalMessage, delivered: bool = True) -> int | None:
        """Store a message; returns None when (thread_id, id) is already stored."""
        try:
            return await self._repo.append_message(message, delivered=delivered)
        except _STORAGE_ERRORS as e:
            logger.error("History write failed for thread %s: %s", message.thread_id, e)
            raise HistoryUnavailableError(message.thread_id, str(e)) from e

    async def exists(self, thread_id: str, message_id: str) -> bool:
        try:
            return await self._repo.message_exists(thread_id, message_id)
        except _STORAGE_ERRORS as e:
            raise HistoryUnavailableError(thread_id, str(e)) from e

    async def is_handled(self, thread_id: str, message_id: str) -> bool:
        try:
            return await self._repo.is_handled(thread_id, message_id)
        except _STORAGE_ERRORS as e:
            raise HistoryUnavailableError(thread_id, str(e)) from e

    async def mark_handled(self, thread_id: str, message_id: str) -> None:
        try:
            await self._repo.mark_handled(thread_id, message_id)
        except _STORAGE_ERRORS as e:
            logger.error("Could not mark %s handled in thread %s: %s", message_id, thread_id, e)
            raise HistoryUnavailableError(thread_id, str(e)) from e


def to_chat_messages(
    history: list[CanonicalMessage], thread_type: ThreadType = ThreadType.INDIVIDUAL
) -> list[ChatMessage]:
    """Map thread history to LLM chat turns.

    Agent messages become assistant turns. In group threads the user text is
    prefixed with the sender's name so the model can tell participants apart.
    Messages without text are skipped.
    """
    chat: list[ChatMessage] = []
    for msg in history:
        if not msg.text:
            continue
        if msg.sender_is_agent:
            chat.append(ChatMessage(role="assistant", content=msg.text))
            continue
        content = msg.text
        if thread_type == ThreadType.GROUP and msg.sender_name:
            content = f"{msg.sender_name} said: {content}"
        chat.append(ChatMessage(role="user", content=content))
    return chat
