"""
Public registration endpoints.

POST /api/v1/registrations                → submit a completed form
POST /api/v1/registrations/steps/{step}   → check one form step's gate

A submission that cannot reach the remote store is still accepted: it is
parked in the local ledger and the reply is 202 ``saved_locally``. The
recovery monitor delivers it later.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from api.models import ErrorResponse, SavedLocallyOut, StepCheckOut, SubmissionOut
from api.services import Services, get_services
from registration.form import FormStep, next_step, validate_step
from utils.errors import SubmissionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registrations", tags=["registrations"])

SAVED_LOCALLY_MESSAGE = (
    "Your registration was saved locally and will be submitted "
    "automatically once the connection is restored."
)


@router.post(
    "",
    status_code=201,
    response_model=SubmissionOut,
    summary="Submit a voter registration",
    responses={
        202: {"model": SavedLocallyOut, "description": "Saved locally for retry"},
        400: {"model": ErrorResponse, "description": "Validation failed"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
)
def submit_registration(
    payload: dict[str, Any] = Body(..., examples=[{
        "agree_to_terms": True,
        "full_name": "Awa Jallow",
        "email": "awa@example.com",
        "date_of_birth": "2001-04-12",
        "gender": "female",
        "organization": "Youth Council",
        "region": "Banjul",
        "constituency": "Banjul North",
        "identification_type": "passport_number",
        "identification_number": "1234567",
    }]),
    services: Services = Depends(get_services),
):
    """Validate and deliver a registration, backing it up locally first."""
    try:
        result = services.workflow.submit(payload)
    except SubmissionError as exc:
        services.monitor.refresh_pending()
        body = SavedLocallyOut(
            submission_id=exc.submission_id,
            backup_key=exc.backup_key,
            message=SAVED_LOCALLY_MESSAGE,
        )
        return JSONResponse(status_code=202, content=body.model_dump())
    return SubmissionOut(
        submission_id=result.submission_id,
        attempts=result.attempts,
        record=result.record,
    )


@router.post(
    "/steps/{step}",
    response_model=StepCheckOut,
    summary="Check whether a form step may advance",
)
def check_step(
    step: FormStep,
    payload: dict[str, Any] = Body(default={}),
) -> StepCheckOut:
    """Run the gate for *step* against the partial form data."""
    errors = validate_step(step, payload)
    upcoming = step if errors else next_step(step)
    return StepCheckOut(
        step=step.value,
        valid=not errors,
        errors=errors,
        next_step=upcoming.value,
    )
