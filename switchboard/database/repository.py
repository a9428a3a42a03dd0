from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from switchboard.models import CanonicalMessage, Channel, ThreadType


class Repository:
    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def upsert_thread(self, thread_id: str, channel: str, thread_type: str) -> None:
        await self._conn.execute(
            "INSERT INTO threads (thread_id, channel, thread_type) VALUES (?, ?, ?) "
            "ON CONFLICT(thread_id) DO UPDATE SET updated_at = datetime('now')",
            (thread_id, channel, thread_type),
        )

    async def append_message(self, message: CanonicalMessage, delivered: bool = True) -> int | None:
        """Store a message. Returns its sequence number, or None if it already exists."""
        await self.upsert_thread(
            message.thread_id, message.channel.value, message.thread_type.value
        )
        cursor = await self._conn.execute(
            "INSERT OR IGNORE INTO messages "
            "(external_id, thread_id, channel, sender_id, sender_name, sender_is_agent, "
            "content, subject, delivered, handled, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.thread_id,
                message.channel.value,
                message.sender_id,
                message.sender_name,
                int(message.sender_is_agent),
                message.text,
                message.subject,
                int(delivered),
                # Agent messages never need an answer
                int(message.sender_is_agent),
                message.created_at.timestamp(),
            ),
        )
        await self._conn.commit()
        # rowcount == 0 means the (thread_id, external_id) pair was already stored
        if cursor.rowcount == 0:
            return None
        return cursor.lastrowid

    async def message_exists(self, thread_id: str, external_id: str) -> bool:
        cursor = await self._conn.execute(
            "SELECT 1 FROM messages WHERE thread_id = ? AND external_id = ?",
            (thread_id, external_id),
        )
        return await cursor.fetchone() is not None

    async def is_handled(self, thread_id: str, external_id: str) -> bool:
        cursor = await self._conn.execute(
            "SELECT handled FROM messages WHERE thread_id = ? AND external_id = ?",
            (thread_id, external_id),
        )
        row = await cursor.fetchone()
        return bool(row and row[0])

    async def mark_handled(self, thread_id: str, external_id: str) -> None:
        await self._conn.execute(
            "UPDATE messages SET handled = 1 WHERE thread_id = ? AND external_id = ?",
            (thread_id, external_id),
        )
        await self._conn.commit()

    async def ping(self) -> bool:
        cursor = await self._conn.execute("SELECT 1")
        return await cursor.fetchone() is not None

    async def get_thread_messages(
        self, thread_id: str, limit: int | None = None
    ) -> list[CanonicalMessage]:
        """Return messages oldest first. With a limit, only the most recent ones."""
        cursor = await self._conn.execute(
            "SELECT m.external_id, m.thread_id, m.channel, m.sender_id, m.sender_name, "
            "m.sender_is_agent, m.content, m.subject, m.created_at, t.thread_type "
            "FROM messages m JOIN threads t ON t.thread_id = m.thread_id "
            "WHERE m.thread_id = ? ORDER BY m.created_at DESC, m.seq DESC LIMIT ?",
            (thread_id, -1 if limit is None else limit),
        )
        rows = await cursor.fetchall()
        return [_row_to_message(r) for r in reversed(rows)]

    async def get_delivery_flag(self, thread_id: str, external_id: str) -> bool | None:
        cursor = await self._conn.execute(
            "SELECT delivered FROM messages WHERE thread_id = ? AND external_id = ?",
            (thread_id, external_id),
        )
        row = await cursor.fetchone()
        return bool(row[0]) if row else None

    # --- Delivery status ---

    async def record_status(
        self,
        external_id: str,
        status: str,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> int:
        cursor = await self._conn.execute(
            "INSERT INTO message_status (external_id, status, error_code, error_message) "
            "VALUES (?, ?, ?, ?)",
            (external_id, status, error_code, error_message),
        )
        await self._conn.commit()
        return cursor.lastrowid

    async def get_status(self, external_id: str) -> str | None:
        """Return the most recently recorded delivery status for a message."""
        cursor = await self._conn.execute(
            "SELECT status FROM message_status WHERE external_id = ? ORDER BY id DESC LIMIT 1",
            (external_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None


def _row_to_message(row) -> CanonicalMessage:
    return CanonicalMessage(
        id=row[0],
        thread_id=row[1],
        channel=Channel(row[2]),
        sender_id=row[3],
        sender_name=row[4],
        sender_is_agent=bool(row[5]),
        text=row[6],
        subject=row[7],
        created_at=datetime.fromtimestamp(row[8], tz=timezone.utc),
        thread_type=ThreadType(row[9]),
    )
