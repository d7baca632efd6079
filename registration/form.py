"""
Multi-step registration form rules.

The public form walks through fixed steps; each step has its own gate that
must pass before the next step opens. ``validate_registration`` runs every
gate plus model validation and is what the submission workflow calls before
any network or storage activity.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from registration.models import VoterRegistration
from utils.config import AppConfig
from utils.errors import ValidationError

MIN_ID_LENGTH = 5


class FormStep(str, Enum):
    DECLARATION = "declaration"
    PERSONAL = "personal"
    REGION = "region"
    CONSTITUENCY = "constituency"
    IDENTIFICATION = "identification"
    COMPLETE = "complete"


STEP_ORDER: list[FormStep] = list(FormStep)

_STEP_MESSAGES = {
    FormStep.DECLARATION: "You must agree to the terms to continue",
    FormStep.PERSONAL: "Please complete all fields before continuing",
    FormStep.REGION: "Please select your region before continuing",
    FormStep.CONSTITUENCY: "Please select your constituency before continuing",
    FormStep.IDENTIFICATION: "Please enter a valid identification number",
}


def _missing(data: Mapping[str, Any], *fields: str) -> bool:
    return any(not data.get(f) for f in fields)


def validate_step(step: FormStep | str, data: Mapping[str, Any]) -> list[str]:
    """Return the gate errors for *step*; an empty list means it may advance."""
    step = FormStep(step)
    failed = False
    if step is FormStep.DECLARATION:
        failed = not data.get("agree_to_terms")
    elif step is FormStep.PERSONAL:
        failed = _missing(data, "full_name", "email", "date_of_birth", "gender")
    elif step is FormStep.REGION:
        failed = _missing(data, "region")
    elif step is FormStep.CONSTITUENCY:
        failed = _missing(data, "constituency")
    elif step is FormStep.IDENTIFICATION:
        number = str(data.get("identification_number") or "")
        failed = _missing(data, "identification_type") or len(number) < MIN_ID_LENGTH
    return [_STEP_MESSAGES[step]] if failed else []


def next_step(step: FormStep | str) -> FormStep:
    """Step after *step*; ``complete`` is terminal."""
    idx = STEP_ORDER.index(FormStep(step))
    return STEP_ORDER[min(idx + 1, len(STEP_ORDER) - 1)]


def previous_step(step: FormStep | str) -> FormStep:
    """Step before *step*; ``declaration`` and ``complete`` stay where they are."""
    step = FormStep(step)
    if step in (FormStep.DECLARATION, FormStep.COMPLETE):
        return step
    return STEP_ORDER[STEP_ORDER.index(step) - 1]


def _pydantic_messages(exc: PydanticValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid value").removeprefix("Value error, ")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


def validate_registration(
    data: Mapping[str, Any] | VoterRegistration,
    config: AppConfig | None = None,
) -> VoterRegistration:
    """Validate a full form submission.

    Raises:
        ValidationError: listing every failed step gate and field problem.
    """
    config = config or AppConfig.from_env()
    if isinstance(data, VoterRegistration):
        raw: Mapping[str, Any] = data.model_dump()
    else:
        raw = data

    if not raw.get("date_of_birth"):
        raise ValidationError("Date of birth is required")

    errors: list[str] = []
    for step in STEP_ORDER[:-1]:
        errors.extend(validate_step(step, raw))
    if errors:
        raise ValidationError(errors[0], errors)

    try:
        registration = (
            data if isinstance(data, VoterRegistration)
            else VoterRegistration.model_validate(dict(raw))
        )
    except PydanticValidationError as exc:
        messages = _pydantic_messages(exc)
        raise ValidationError(messages[0], messages) from exc

    year = registration.date_of_birth.year
    if not config.dob_min_year <= year <= config.dob_max_year:
        raise ValidationError(
            f"Date of birth must fall between {config.dob_min_year} "
            f"and {config.dob_max_year}"
        )
    if registration.date_of_birth > date.today():
        raise ValidationError("Date of birth cannot be in the future")
    return registration
