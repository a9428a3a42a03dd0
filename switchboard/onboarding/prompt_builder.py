from __future__ import annotations

from dataclasses import dataclass

from switchboard.onboarding.extractor import next_missing_field
from switchboard.onboarding.fields import FieldDefinition, OnboardingConfig

_FIELD_GUIDANCE = {
    "name": "Ask for their full name directly. Be warm but direct.",
    "email": "Ask for their email address directly. Mention it will be used for communication.",
    "business_type": (
        "Ask what industry or business type they work in. "
        "Provide 2-3 brief examples if appropriate."
    ),
    "goals": "Ask what specific goals they want to achieve with the assistant. Be direct.",
}
_DEFAULT_GUIDANCE = "Ask directly for the specific information needed."


@dataclass(frozen=True)
class SystemInstruction:
    kind: str  # "ask" or "complete"
    text: str
    field_key: str | None = None


def _known_lines(fields: list[FieldDefinition], snapshot: dict[str, str]) -> list[str]:
    return [
        f"- {f.label}: {snapshot[f.field_key]}"
        for f in fields
        if snapshot.get(f.field_key)
    ]


def build_onboarding_prompt(
    fields: list[FieldDefinition],
    snapshot: dict[str, str],
    config: OnboardingConfig,
) -> SystemInstruction:
    """Build the instruction for the next onboarding turn.

    Asks for exactly one field, the lowest-order required field still missing,
    or returns the completion instruction when every required field is known.
    """
    known = _known_lines(fields, snapshot)
    target = next_missing_field(fields, snapshot)
    lines = [config.system_prompt] if config.system_prompt else []
    lines.append(f"Your name is {config.agent_name}.")

    if target is None:
        lines.append("\nThe user has finished onboarding. Information collected:")
        lines.extend(known)
        lines.append(
            "\nInstructions:\n"
            "1. Thank the user and briefly confirm what you saved\n"
            f'2. Include this message: "{config.final_message}"\n'
            "3. Do not ask for any more onboarding information\n"
            "4. Offer to help with whatever they need next"
        )
        return SystemInstruction(kind="complete", text="\n".join(lines))

    is_first = not known
    lines.append("\nYou're conducting a focused onboarding process to collect specific information.")
    if is_first:
        lines.append("This is the first question in the onboarding process.")
    else:
        lines.append("Information already collected (do not ask for it again):")
        lines.extend(known)

    requirement = "required" if target.required else "optional"
    lines.append(f'\nCurrent question: {target.prompt_hint} ("{target.label}").')
    lines.append(f"This is {requirement} information.")
    lines.append(f"Guidance: {_FIELD_GUIDANCE.get(target.field_key, _DEFAULT_GUIDANCE)}")

    first_step = (
        "Start with a brief welcome (1 sentence)"
        if is_first
        else "Acknowledge the previous answer very briefly (half a sentence)"
    )
    lines.append(
        "\nInstructions:\n"
        f"1. {first_step}\n"
        f'2. Ask only for the user\'s {target.label.lower()} and use the words "{target.label}"\n'
        "3. Keep your entire response under 2 sentences\n"
        "4. Do not ask about anything else and do not repeat known information as a question"
    )
    return SystemInstruction(kind="ask", text="\n".join(lines), field_key=target.field_key)


def build_system_prompt(
    base: str,
    snapshot: dict[str, str],
    fields: list[FieldDefinition],
    agent_name: str,
    current_date: str,
) -> str:
    """Build the steady-state persona prompt from base + collected user facts."""
    lines = [base, f"Your name is {agent_name}."]

    labels = {f.field_key: f.label for f in fields}
    if name := snapshot.get("name"):
        lines.append(f"The user's name is {name}.")
    for key, value in snapshot.items():
        if key == "name" or not value:
            continue
        lines.append(f"{labels.get(key, key.replace('_', ' ').title())}: {value}.")

    lines.append(f"\nCurrent Date: {current_date}")
    return "\n".join(lines)
