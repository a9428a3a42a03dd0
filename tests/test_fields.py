import pytest
from pydantic import ValidationError

from switchboard.onboarding.fields import (
    FieldDefinition,
    OnboardingConfig,
    build_group_onboarding_config,
    build_onboarding_config,
    derive_keywords,
    load_fields,
)
from tests.conftest import TEST_SETTINGS


def test_field_defaults_are_derived():
    field = FieldDefinition(field_key="big_dream")
    assert field.label == "Big Dream"
    assert field.prompt_hint == "Ask for the user's big dream"
    assert "big dream" in field.keywords
    assert "dream" in field.keywords
    assert field.required is True


def test_configured_keywords_are_lowercased():
    field = FieldDefinition(field_key="city", keywords=[" City ", "Town", ""])
    assert field.keywords == ["city", "town"]


def test_derive_keywords_skips_generic_words():
    keywords = derive_keywords("email", "Email Address")
    assert "email" in keywords
    assert "email address" in keywords
    assert "address" not in keywords


def test_config_sorts_by_order_and_rejects_duplicates():
    config = OnboardingConfig(
        fields=[FieldDefinition(field_key="b", order=2), FieldDefinition(field_key="a", order=1)]
    )
    assert [f.field_key for f in config.fields] == ["a", "b"]

    with pytest.raises(ValidationError):
        OnboardingConfig(
            fields=[FieldDefinition(field_key="a"), FieldDefinition(field_key="a")]
        )


def test_required_fields():
    config = OnboardingConfig(
        fields=[
            FieldDefinition(field_key="name", order=1),
            FieldDefinition(field_key="nickname", order=2, required=False),
        ]
    )
    assert [f.field_key for f in config.required_fields] == ["name"]


def test_load_fields_missing_file_uses_defaults(tmp_path):
    fields = load_fields(tmp_path / "missing.yaml")
    assert [f.field_key for f in fields] == ["name", "email"]


def test_load_fields_from_yaml(tmp_path):
    path = tmp_path / "fields.yaml"
    path.write_text(
        "fields:\n"
        "  - field_key: name\n"
        "    label: Full Name\n"
        "  - field_key: business_type\n"
        "    label: Business Type\n"
        "    required: false\n"
        "  - field_key: goals\n"
        "    prompt_hint: Ask what they want to achieve\n"
        "    keywords: [goals, achieve]\n",
        encoding="utf-8",
    )
    fields = load_fields(path)
    assert [f.field_key for f in fields] == ["name", "business_type", "goals"]
    assert [f.order for f in fields] == [1, 2, 3]
    assert fields[1].required is False
    assert fields[2].keywords == ["goals", "achieve"]


def test_build_onboarding_config_from_settings():
    config = build_onboarding_config(TEST_SETTINGS)
    assert config.enabled is True
    assert config.agent_name == "Ava"
    assert [f.field_key for f in config.fields] == ["name", "email"]


def test_load_fields_missing_file_uses_given_defaults(tmp_path):
    assert load_fields(tmp_path / "missing.yaml", defaults=[]) == []


def test_group_onboarding_is_off_without_fields_file():
    config = build_group_onboarding_config(TEST_SETTINGS)
    assert config.enabled is False
    assert config.fields == []


def test_group_onboarding_loads_its_own_fields(tmp_path):
    path = tmp_path / "group_fields.yaml"
    path.write_text(
        "fields:\n"
        "  - field_key: group_purpose\n"
        "    label: Group Purpose\n",
        encoding="utf-8",
    )
    settings = TEST_SETTINGS.model_copy(update={"group_onboarding_fields_path": str(path)})
    config = build_group_onboarding_config(settings)
    assert config.enabled is True
    assert [f.field_key for f in config.fields] == ["group_purpose"]
    assert config.system_prompt == settings.group_onboarding_system_prompt
