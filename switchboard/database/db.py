from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    thread_id    TEXT PRIMARY KEY,
    channel      TEXT NOT NULL,
    thread_type  TEXT NOT NULL DEFAULT 'individual',
    created_at   TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at   TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS messages (
    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id       TEXT NOT NULL REFERENCES threads(thread_id),
    external_id     TEXT NOT NULL,
    channel         TEXT NOT NULL,
    sender_id       TEXT,
    sender_name     TEXT NOT NULL DEFAULT '',
    sender_is_agent INTEGER NOT NULL DEFAULT 0,
    content         TEXT NOT NULL DEFAULT '',
    subject         TEXT,
    delivered       INTEGER NOT NULL DEFAULT 1,
    handled         INTEGER NOT NULL DEFAULT 0,
    created_at      REAL NOT NULL,
    UNIQUE (thread_id, external_id)
);
CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, created_at, seq);

CREATE TABLE IF NOT EXISTS message_status (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id   TEXT NOT NULL,
    status        TEXT NOT NULL,
    error_code    TEXT,
    error_message TEXT,
    recorded_at   TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_message_status_external ON message_status(external_id);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open the database and make sure the schema exists."""
    conn = await aiosqlite.connect(db_path)
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA synchronous=NORMAL")  # Faster, safe with WAL
    await conn.execute("PRAGMA temp_store=MEMORY")
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(SCHEMA)
    await conn.commit()
    logger.info("Database ready at %s", db_path)
    return conn
