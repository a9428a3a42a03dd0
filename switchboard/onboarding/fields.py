"""Onboarding field definitions and their YAML configuration."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# Words too generic to identify a field on their own
_STOPWORDS = {
    "about", "address", "their", "there", "what", "which", "with", "your", "user", "users",
    "full", "main", "this", "that", "from", "have", "please",
}


class FieldDefinition(BaseModel):
    field_key: str
    label: str = ""
    prompt_hint: str = ""
    keywords: list[str] = Field(default_factory=list)
    required: bool = True
    order: int = 0

    @model_validator(mode="after")
    def _fill_defaults(self) -> FieldDefinition:
        if not self.label:
            self.label = self.field_key.replace("_", " ").title()
        if not self.prompt_hint:
            self.prompt_hint = f"Ask for the user's {self.label.lower()}"
        if not self.keywords:
            self.keywords = derive_keywords(self.field_key, self.label)
        else:
            self.keywords = [k.strip().lower() for k in self.keywords if k.strip()]
        return self


class OnboardingConfig(BaseModel):
    enabled: bool = True
    system_prompt: str = ""
    final_message: str = ""
    agent_name: str = "Assistant"
    fields: list[FieldDefinition] = Field(default_factory=list)

    @field_validator("fields")
    @classmethod
    def _order_fields(cls, v: list[FieldDefinition]) -> list[FieldDefinition]:
        keys = [f.field_key for f in v]
        duplicates = {k for k in keys if keys.count(k) > 1}
        if duplicates:
            raise ValueError(f"duplicate onboarding field keys: {sorted(duplicates)}")
        # Stable sort keeps file order for equal `order` values
        return sorted(v, key=lambda f: f.order)

    @property
    def required_fields(self) -> list[FieldDefinition]:
        return [f for f in self.fields if f.required]


DEFAULT_FIELDS: list[FieldDefinition] = [
    FieldDefinition(
        field_key="name",
        label="Full Name",
        prompt_hint="Ask for the user's full name",
        keywords=["name", "call you"],
        required=True,
        order=1,
    ),
    FieldDefinition(
        field_key="email",
        label="Email Address",
        prompt_hint="Ask for the user's email address",
        keywords=["email", "e-mail"],
        required=True,
        order=2,
    ),
]


def derive_keywords(field_key: str, label: str) -> list[str]:
    """Build a recognition keyword set from a field's key and label."""
    phrases = [field_key.replace("_", " ").lower(), label.lower()]
    words: list[str] = []
    for phrase in phrases:
        for word in re.findall(r"[a-z][a-z\-]+", phrase):
            if len(word) >= 4 and word not in _STOPWORDS:
                words.append(word)
    keywords: list[str] = []
    for kw in phrases + words:
        if kw and kw not in keywords:
            keywords.append(kw)
    return keywords


def load_fields(
    path: str | Path, defaults: list[FieldDefinition] | None = None
) -> list[FieldDefinition]:
    """Load field definitions from a YAML file.

    A missing file gives `defaults` (DEFAULT_FIELDS when not given).

    Expected layout::

        fields:
          - field_key: name
            label: Full Name
            prompt_hint: Ask for the user's full name
            required: true
            order: 1
    """
    path = Path(path)
    if not path.exists():
        logger.info("Onboarding fields file %s not found, using defaults", path)
        return [f.model_copy() for f in (DEFAULT_FIELDS if defaults is None else defaults)]

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    raw_fields = data.get("fields", []) if isinstance(data, dict) else data
    fields = [FieldDefinition.model_validate(item) for item in raw_fields or []]
    for index, field in enumerate(fields):
        if field.order == 0:
            field.order = index + 1
    logger.info("Loaded %d onboarding fields from %s", len(fields), path)
    return fields


def build_onboarding_config(settings) -> OnboardingConfig:
    """Assemble the injected onboarding configuration from application settings."""
    return OnboardingConfig(
        enabled=settings.onboarding_enabled,
        system_prompt=settings.onboarding_system_prompt,
        final_message=settings.onboarding_final_message,
        agent_name=settings.agent_name,
        fields=load_fields(settings.onboarding_fields_path),
    )


def build_group_onboarding_config(settings) -> OnboardingConfig:
    """Group threads collect facts about the group, from their own fields file.

    There are no built-in group fields; without a file group onboarding is off.
    """
    fields = load_fields(settings.group_onboarding_fields_path, defaults=[])
    return OnboardingConfig(
        enabled=settings.group_onboarding_enabled and bool(fields),
        system_prompt=settings.group_onboarding_system_prompt,
        final_message=settings.group_onboarding_final_message,
        agent_name=settings.agent_name,
        fields=fields,
    )
