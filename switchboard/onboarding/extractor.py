"""Reconstruct onboarding progress from thread history.

Nothing about onboarding is stored. Each triage decision re-reads the thread
and pairs agent questions with the user replies that follow them. The scan is a
pure function of (history, fields, classifier).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from switchboard.models import CanonicalMessage
from switchboard.onboarding.classifier import MessageClassifier, default_classifier
from switchboard.onboarding.fields import FieldDefinition


class OnboardingStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass
class ExtractionResult:
    snapshot: dict[str, str] = field(default_factory=dict)
    pending_field: str | None = None
    asked_fields: set[str] = field(default_factory=set)

    def status(self, fields: list[FieldDefinition]) -> OnboardingStatus:
        if not self.asked_fields:
            return OnboardingStatus.NOT_STARTED
        if all(self.snapshot.get(f.field_key) for f in fields if f.required):
            return OnboardingStatus.COMPLETE
        return OnboardingStatus.IN_PROGRESS


def scan_history(
    history: list[CanonicalMessage],
    fields: list[FieldDefinition],
    classifier: MessageClassifier | None = None,
) -> ExtractionResult:
    """Walk history in order and pair each field question with its answer.

    - An agent message that refers to a field makes it the pending field,
      replacing any earlier pending one.
    - A non-empty user message that is not a question answers the pending
      field and clears it.
    - A user question leaves the pending field in place.
    """
    classifier = classifier or default_classifier
    result = ExtractionResult()
    required_keys = {f.field_key for f in fields if f.required}

    for msg in history:
        if msg.sender_is_agent:
            refs = classifier.referenced_fields(msg.text, fields)
            if not refs:
                continue
            result.asked_fields.update(refs)

            open_refs = [key for key in refs if key not in result.snapshot]
            if open_refs:
                result.pending_field = open_refs[0]
            elif required_keys and required_keys <= result.snapshot.keys():
                # Onboarding is done; mentioning a known field is not a new question.
                continue
            elif len(refs) > 1:
                # Recap of several answered fields
                result.pending_field = None
            else:
                # Reminder or re-ask: the next answer replaces the old one
                result.pending_field = refs[0]
            continue

        text = msg.text.strip()
        if not text or result.pending_field is None:
            continue
        if classifier.is_question(text):
            continue
        result.snapshot[result.pending_field] = text
        result.pending_field = None

    return result


def extract_collected_fields(
    history: list[CanonicalMessage],
    fields: list[FieldDefinition],
    classifier: MessageClassifier | None = None,
) -> dict[str, str]:
    """Return the collected-field snapshot for a thread history."""
    return scan_history(history, fields, classifier).snapshot


def onboarding_status(
    history: list[CanonicalMessage],
    fields: list[FieldDefinition],
    classifier: MessageClassifier | None = None,
) -> OnboardingStatus:
    return scan_history(history, fields, classifier).status(fields)


def next_missing_field(
    fields: list[FieldDefinition], snapshot: dict[str, str]
) -> FieldDefinition | None:
    """Lowest-order required field without a value, or None when all are present."""
    for f in sorted(fields, key=lambda f: f.order):
        if f.required and not snapshot.get(f.field_key):
            return f
    return None
