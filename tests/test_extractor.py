from switchboard.onboarding.extractor import (
    OnboardingStatus,
    extract_collected_fields,
    next_missing_field,
    onboarding_status,
    scan_history,
)
from switchboard.onboarding.fields import FieldDefinition
from tests.conftest import make_message


def _fields(onboarding_config):
    return onboarding_config.fields


def _conversation():
    return [
        make_message("Hi"),
        make_message("Welcome! What's your full name?", agent=True),
        make_message("Jane Doe"),
        make_message("Thanks Jane! What's your email address?", agent=True),
        make_message("jane@example.com"),
    ]


def test_empty_history(onboarding_config):
    result = scan_history([], _fields(onboarding_config))
    assert result.snapshot == {}
    assert result.pending_field is None
    assert onboarding_status([], _fields(onboarding_config)) == OnboardingStatus.NOT_STARTED


def test_answer_fills_pending_field(onboarding_config):
    history = _conversation()[:3]
    assert extract_collected_fields(history, _fields(onboarding_config)) == {"name": "Jane Doe"}
    assert onboarding_status(history, _fields(onboarding_config)) == OnboardingStatus.IN_PROGRESS


def test_full_conversation_is_complete(onboarding_config):
    history = _conversation()
    snapshot = extract_collected_fields(history, _fields(onboarding_config))
    assert snapshot == {"name": "Jane Doe", "email": "jane@example.com"}
    assert onboarding_status(history, _fields(onboarding_config)) == OnboardingStatus.COMPLETE


def test_asked_but_unanswered_is_pending(onboarding_config):
    history = _conversation()[:4]
    result = scan_history(history, _fields(onboarding_config))
    assert result.pending_field == "email"
    assert "email" not in result.snapshot


def test_user_question_keeps_pending_field(onboarding_config):
    history = [
        make_message("Hi"),
        make_message("What's your full name?", agent=True),
        make_message("what do you mean?"),
    ]
    result = scan_history(history, _fields(onboarding_config))
    assert result.snapshot == {}
    assert result.pending_field == "name"

    history.append(make_message("Jane Doe"))
    assert extract_collected_fields(history, _fields(onboarding_config)) == {"name": "Jane Doe"}


def test_question_without_question_mark_is_a_detour(onboarding_config):
    history = [
        make_message("May I have your name?", agent=True),
        make_message("Why do you need that"),
    ]
    assert scan_history(history, _fields(onboarding_config)).pending_field == "name"


def test_empty_user_message_does_not_answer(onboarding_config):
    history = [
        make_message("What's your name?", agent=True),
        make_message(""),
        make_message("   "),
    ]
    result = scan_history(history, _fields(onboarding_config))
    assert result.snapshot == {}
    assert result.pending_field == "name"


def test_latest_agent_question_overwrites_pending(onboarding_config):
    history = [
        make_message("What's your name?", agent=True),
        make_message("Actually, what's your email?", agent=True),
        make_message("jane@example.com"),
    ]
    assert extract_collected_fields(history, _fields(onboarding_config)) == {
        "email": "jane@example.com"
    }


def test_reminder_keeps_only_answer_after_last_reference(onboarding_config):
    history = [
        make_message("What's your name?", agent=True),
        make_message("J"),
        make_message("Sorry, could you give me your full name?", agent=True),
        make_message("Jane Doe"),
    ]
    assert extract_collected_fields(history, _fields(onboarding_config))["name"] == "Jane Doe"


def test_user_text_without_pending_question_is_ignored(onboarding_config):
    history = [make_message("Hello"), make_message("Jane Doe")]
    assert extract_collected_fields(history, _fields(onboarding_config)) == {}


def test_recap_clears_pending(onboarding_config):
    history = [
        make_message("What's your name?", agent=True),
        make_message("Jane"),
        make_message("What's your email?", agent=True),
        make_message("j@example.com"),
    ]
    # Both collected: a recap mentioning both fields opens nothing
    history.append(make_message("Great, I have your name and email saved.", agent=True))
    history.append(make_message("Cool thanks"))
    result = scan_history(history, _fields(onboarding_config))
    assert result.pending_field is None
    assert result.snapshot == {"name": "Jane", "email": "j@example.com"}


def test_completed_fields_are_not_reopened(onboarding_config):
    history = _conversation() + [
        make_message("By the way, you can email me anytime.", agent=True),
        make_message("Sounds good"),
    ]
    snapshot = extract_collected_fields(history, _fields(onboarding_config))
    assert snapshot["email"] == "jane@example.com"


def test_message_referencing_two_fields_asks_lowest_missing(onboarding_config):
    history = [
        make_message("Thanks for your name! Now, what's your email?", agent=True),
        make_message("Jane"),
    ]
    # Nothing collected yet: the lowest-order field is pending
    assert extract_collected_fields(history, _fields(onboarding_config)) == {"name": "Jane"}

    history = [
        make_message("What's your name?", agent=True),
        make_message("Jane"),
        make_message("Thanks for your name! Now, what's your email?", agent=True),
        make_message("j@example.com"),
    ]
    assert extract_collected_fields(history, _fields(onboarding_config)) == {
        "name": "Jane",
        "email": "j@example.com",
    }


# --- Properties ---


def test_determinism(onboarding_config):
    history = _conversation()
    first = scan_history(history, _fields(onboarding_config))
    second = scan_history(list(history), _fields(onboarding_config))
    assert first == second


def test_monotonicity_over_prefixes(onboarding_config):
    history = _conversation() + [
        make_message("Anything else?", agent=True),
        make_message("What is your email again?", agent=True),
        make_message("no"),
    ]
    previous: dict = {}
    for end in range(len(history) + 1):
        snapshot = extract_collected_fields(history[:end], _fields(onboarding_config))
        for key in previous:
            assert key in snapshot
        previous = snapshot


def test_single_pending_field_on_every_prefix(onboarding_config):
    history = _conversation()
    for end in range(len(history) + 1):
        result = scan_history(history[:end], _fields(onboarding_config))
        assert result.pending_field is None or isinstance(result.pending_field, str)


def test_completion_converges_and_stays_complete(onboarding_config):
    history = _conversation()
    extended = history + [
        make_message("How can I help?", agent=True),
        make_message("What's the weather?"),
        make_message("It's sunny. Need anything else?", agent=True),
        make_message("no"),
    ]
    for end in range(len(history), len(extended) + 1):
        assert (
            onboarding_status(extended[:end], _fields(onboarding_config))
            == OnboardingStatus.COMPLETE
        )


# --- next_missing_field ---


def test_next_missing_field_order():
    fields = [
        FieldDefinition(field_key="goals", order=3),
        FieldDefinition(field_key="name", order=1),
        FieldDefinition(field_key="nickname", order=2, required=False),
    ]
    assert next_missing_field(fields, {}).field_key == "name"
    assert next_missing_field(fields, {"name": "Jane"}).field_key == "goals"
    assert next_missing_field(fields, {"name": "Jane", "goals": ""}).field_key == "goals"
    assert next_missing_field(fields, {"name": "Jane", "goals": "sell more"}) is None
