"""
Domain records for voter registration.

``VoterRegistration`` is the strict inbound shape: every field the public
form collects, validated at the boundary (enums, digits-only ID number,
constituency within the chosen region). ``VoterRecord`` is the shape read
back from the remote store; it is lenient because stored rows may predate
current validation rules, and the dashboard must still count them.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from utils.config import KnownValues

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Region(str, Enum):
    BANJUL = "Banjul"
    KANIFING = "Kanifing"
    WEST_COAST = "West Coast"
    NORTH_BANK = "North Bank"
    LOWER_RIVER = "Lower River"
    CENTRAL_RIVER = "Central River"
    UPPER_RIVER = "Upper River"


class IdentificationType(str, Enum):
    BIRTH_CERTIFICATE = "birth_certificate"
    IDENTIFICATION_DOCUMENT = "identification_document"
    PASSPORT_NUMBER = "passport_number"


class VoterRegistration(BaseModel):
    """A completed registration form, ready for remote insertion."""

    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True)

    agree_to_terms: bool = Field(..., description="Declaration accepted")
    full_name: str = Field(..., min_length=1, examples=["Awa Jallow"])
    email: str = Field(..., description="Unique; used as the dedup key",
                       examples=["awa@example.com"])
    date_of_birth: date = Field(..., examples=["2001-04-12"])
    gender: Gender
    organization: str = Field("", description="Free-text organization")
    region: Region
    constituency: str = Field(..., min_length=1, examples=["Banjul North"])
    identification_type: IdentificationType
    identification_number: str = Field(..., min_length=5, examples=["1234567"])

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        if not EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address")
        return value.lower()

    @field_validator("identification_number")
    @classmethod
    def _digits_only(cls, value: str) -> str:
        if not value.isdigit():
            raise ValueError("Identification number must contain digits only")
        return value

    @field_validator("agree_to_terms")
    @classmethod
    def _agreed(cls, value: bool) -> bool:
        if not value:
            raise ValueError("You must agree to the terms to continue")
        return value

    @model_validator(mode="after")
    def _constituency_in_region(self) -> "VoterRegistration":
        if not KnownValues.is_valid_constituency(self.region, self.constituency):
            raise ValueError(
                f"Constituency '{self.constituency}' is not in region '{self.region}'"
            )
        return self

    def to_insert_payload(self) -> dict[str, Any]:
        """Row shape expected by the ``voters`` table."""
        data = self.model_dump()
        data["date_of_birth"] = self.date_of_birth.isoformat()
        return data


class VoterRecord(BaseModel):
    """A voter row as stored remotely."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    full_name: str = ""
    email: str = ""
    date_of_birth: str | None = None
    gender: str | None = None
    organization: str | None = None
    region: str | None = None
    constituency: str | None = None
    identification_type: str | None = None
    identification_number: str | None = None
    agree_to_terms: bool | None = None
    created_at: datetime | None = None

    @field_validator("id", "identification_number", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @property
    def dob_date(self) -> str:
        """Date of birth without any time component."""
        return self.date_of_birth.split("T")[0] if self.date_of_birth else ""


class AdminRecord(BaseModel):
    """An administrator row. Passwords are never read back into this model."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    is_admin: bool = True
    created_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return str(value)
