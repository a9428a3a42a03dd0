import asyncio
import hashlib
import hmac
import itertools
import json
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from switchboard.config import Settings
from switchboard.conversation.history import ThreadHistory
from switchboard.database.db import init_db
from switchboard.database.repository import Repository
from switchboard.main import app, build_components
from switchboard.models import CanonicalMessage, Channel, ThreadType
from switchboard.onboarding.fields import DEFAULT_FIELDS, FieldDefinition, OnboardingConfig

TEST_SETTINGS = Settings(
    agent_name="Ava",
    agent_number="+15550001111",
    agent_email="agent@example.com",
    whatsapp_verify_token="my_verify_token",
    whatsapp_app_secret="test_secret",
    webhook_secret="hook_secret",
    messaging_api_url="https://api.example.test/v1",
    messaging_account_id="acc1",
    ollama_base_url="http://localhost:11434",
    ollama_model="test-model",
    database_path=":memory:",
    onboarding_fields_path="/nonexistent/onboarding_fields.yaml",
    group_onboarding_fields_path="/nonexistent/group_onboarding_fields.yaml",
    log_file="",
)

BASE_TIME = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
_ids = itertools.count(1)


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture
def onboarding_config() -> OnboardingConfig:
    return OnboardingConfig(
        enabled=True,
        system_prompt="You are onboarding a new user.",
        final_message="Thanks, you're all set.",
        agent_name="Ava",
        fields=[f.model_copy() for f in DEFAULT_FIELDS],
    )


@pytest.fixture
def group_onboarding_config() -> OnboardingConfig:
    return OnboardingConfig(
        enabled=True,
        system_prompt="You have just joined a group.",
        final_message="Thanks everyone!",
        agent_name="Ava",
        fields=[
            FieldDefinition(
                field_key="group_purpose",
                label="Group Purpose",
                keywords=["purpose"],
                order=1,
            )
        ],
    )


def make_message(
    text: str,
    *,
    agent: bool = False,
    thread_id: str = "thread-1",
    message_id: str | None = None,
    offset: int | None = None,
    thread_type: ThreadType = ThreadType.INDIVIDUAL,
    channel: Channel = Channel.WHATSAPP,
    sender_name: str = "",
) -> CanonicalMessage:
    """Build a message; successive calls get increasing timestamps unless offset is given."""
    n = next(_ids)
    return CanonicalMessage(
        id=message_id or f"msg-{n}",
        thread_id=thread_id,
        thread_type=thread_type,
        sender_id="15550001111" if agent else "15551234567",
        sender_name=sender_name or ("Ava" if agent else "Jane"),
        sender_is_agent=agent,
        text=text,
        channel=channel,
        created_at=BASE_TIME + timedelta(seconds=offset if offset is not None else n),
    )


# --- Async fixtures for unit tests ---


@pytest.fixture
async def db_connection():
    conn = await init_db(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
async def repository(db_connection):
    return Repository(db_connection)


@pytest.fixture
async def history(repository) -> ThreadHistory:
    return ThreadHistory(repository)


# --- Sync fixture for TestClient-based integration tests ---


def make_http_response(json_data: dict | None = None, status_code: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = json.dumps(json_data or {})
    resp.json.return_value = json_data or {}
    return resp


@pytest.fixture
def client(settings: Settings) -> TestClient:
    mock_http = AsyncMock()
    mock_http.post = AsyncMock(
        return_value=make_http_response({"message": {"role": "assistant", "content": "Mock reply"}})
    )
    mock_http.get = AsyncMock()

    tmp_dir = tempfile.mkdtemp()
    db_path = str(Path(tmp_dir) / "test.db")
    conn = asyncio.run(init_db(db_path))

    build_components(app, settings, mock_http, Repository(conn))

    yield TestClient(app, raise_server_exceptions=False)

    # Teardown: stop the aiosqlite worker thread to prevent process hang.
    # aiosqlite 0.22+ uses a non-daemon Thread; without closing it, pytest
    # hangs waiting for the thread after all tests complete.
    conn.stop()


def make_whatsapp_payload(
    from_number: str = "15551234567",
    message_id: str = "wamid.test123",
    text: str = "Hello!",
    msg_type: str = "text",
    caption: str | None = None,
    name: str = "Jane",
) -> dict:
    """Meta Cloud API webhook batch with a single message."""
    msg: dict = {
        "from": from_number,
        "id": message_id,
        "timestamp": "1700000000",
        "type": msg_type,
    }
    if msg_type == "text":
        msg["text"] = {"body": text}
    elif msg_type == "audio":
        msg["audio"] = {"id": "audio_media_id", "mime_type": "audio/ogg"}
    elif msg_type == "image":
        img: dict = {"id": "image_media_id", "mime_type": "image/jpeg"}
        if caption:
            img["caption"] = caption
        msg["image"] = img
    elif msg_type == "sticker":
        msg["sticker"] = {"id": "sticker_id"}

    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "BIZ_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15550001111",
                                "phone_number_id": "123456",
                            },
                            "contacts": [{"wa_id": from_number, "profile": {"name": name}}],
                            "messages": [msg],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def make_provider_payload(
    text: str = "Hello!",
    message_id: str = "msg-100",
    thread_id: str = "thread-100",
    sender_number: str = "+15551234567",
    thread_type: str = "individual",
    is_from_agent: bool = False,
    timestamp: str = "2026-01-05T12:00:00Z",
) -> dict:
    """Messaging-provider WhatsApp webhook payload."""
    return {
        "thread_id": thread_id,
        "message_id": message_id,
        "thread_type": thread_type,
        "sender_number": sender_number,
        "sender_name": "Jane",
        "timestamp": timestamp,
        "service": "whatsapp",
        "message_type": "text",
        "message_content": {"text": text},
        "is_from_agent": is_from_agent,
    }


def sign_payload(payload_bytes: bytes, secret: str = "test_secret") -> str:
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()
    return f"sha256={sig}"


def provider_headers(
    payload_bytes: bytes, secret: str = "hook_secret", timestamp: int | None = None
) -> dict[str, str]:
    ts = str(timestamp if timestamp is not None else int(time.time()))
    sig = hmac.new(secret.encode(), ts.encode() + payload_bytes, hashlib.sha256).hexdigest()
    return {"X-Timestamp": ts, "X-Signature": sig, "Content-Type": "application/json"}
