from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    # Agent identity
    agent_name: str = "Assistant"
    agent_number: str = ""
    agent_email: str = ""

    # WhatsApp Cloud API
    whatsapp_access_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_verify_token: str = ""
    whatsapp_app_secret: str = ""

    # Messaging provider (WhatsApp rich payloads, SMS, email)
    messaging_api_url: str = "https://api.a1base.com/v1"
    messaging_api_key: str = ""
    messaging_api_secret: str = ""
    messaging_account_id: str = ""

    # Webhook verification for provider payloads
    webhook_secret: str = ""
    webhook_signature_enabled: bool = True
    webhook_max_age_seconds: int = 300

    # Ollama
    ollama_base_url: str = "http://ollama:11434"
    ollama_model: str = "qwen3:8b"
    llm_timeout_seconds: float = 60.0
    system_prompt: str = (
        "You are a helpful assistant that talks to people over WhatsApp, SMS, email "
        "and web chat. Be friendly and concise. Answer in the same language the user writes in."
    )
    fallback_reply: str = "Sorry, I ran into a problem handling your message. Please try again in a moment."

    # LLM context window (most recent messages)
    conversation_max_messages: int = 20

    # Database
    database_path: str = "data/switchboard.db"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    log_file: str = "data/switchboard.log"

    # Onboarding
    onboarding_enabled: bool = True
    onboarding_fields_path: str = "data/onboarding_fields.yaml"
    onboarding_system_prompt: str = (
        "You are conducting an onboarding conversation with a new user. Your goal is to make "
        "them feel welcome and collect some basic information that will help you assist them "
        "better in the future. Be friendly, professional, and conversational."
    )
    onboarding_final_message: str = (
        "Thank you for sharing this information. I've saved your details and I'm ready to help."
    )

    # Group onboarding (off unless a group fields file exists)
    group_onboarding_enabled: bool = True
    group_onboarding_fields_path: str = "data/group_onboarding_fields.yaml"
    group_onboarding_system_prompt: str = (
        "You have just been added to a group chat. Introduce yourself briefly, then collect "
        "some information about the group so you can help everyone better. Be friendly and concise."
    )
    group_onboarding_final_message: str = (
        "Thanks everyone! I've saved the group's details and I'm ready to help."
    )

    # Group chats
    respond_only_when_mentioned: bool = False
    mention_aliases: Annotated[list[str], NoDecode] = []

    @field_validator("mention_aliases", mode="before")
    @classmethod
    def parse_aliases(cls, v: object) -> object:
        if isinstance(v, str):
            return [a.strip() for a in v.split(",") if a.strip()]
        return v

    # Welcome email workflow
    welcome_email_enabled: bool = True
    welcome_email_subject: str = "Welcome!"

    # Task workflows
    email_action_enabled: bool = True
    agent_identity_card_url: str = ""

    model_config = {"env_file": ".env"}
