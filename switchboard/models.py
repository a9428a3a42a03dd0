from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class Channel(str, Enum):
    WHATSAPP = "whatsapp"
    SMS = "sms"
    EMAIL = "email"
    WEB = "web"


class ThreadType(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class CanonicalMessage(BaseModel):
    id: str
    thread_id: str
    thread_type: ThreadType = ThreadType.INDIVIDUAL
    sender_id: str | None
    sender_name: str = ""
    sender_is_agent: bool = False
    text: str = ""
    channel: Channel
    created_at: datetime
    subject: str | None = None

    model_config = {"frozen": True}


class ChatMessage(BaseModel):
    role: str  # "system", "user" or "assistant"
    content: str


class TriageAction(str, Enum):
    REPLY = "reply"
    SUPPRESSED = "suppressed"
    HANDED_OFF = "handed-off"


class ConversationState(str, Enum):
    NEW_THREAD = "new_thread"
    ONBOARDING = "onboarding"
    STEADY_STATE = "steady_state"


class TriageResult(BaseModel):
    action: TriageAction
    reply_text: str | None = None
    route: str = "default"
    state: ConversationState | None = None


class DeliveryReceipt(BaseModel):
    channel: Channel
    recipient: str
    external_id: str | None = None
    delivered: bool = True


class OllamaCheck(BaseModel):
    available: bool


class DatabaseCheck(BaseModel):
    available: bool


class HealthChecks(BaseModel):
    ollama: OllamaCheck
    database: DatabaseCheck


class HealthResponse(BaseModel):
    status: str
    checks: HealthChecks
