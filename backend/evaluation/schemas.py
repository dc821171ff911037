"""Pydantic request/response schemas used by the API.

Request models double as the validation rule sets: strings are trimmed,
unknown keys are dropped and every constraint is checked in one pass.
Response models serialize records with camelCase keys (`subjectId`,
`createdAt`, ...), which is what the front end consumes.
"""

from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import INVALID_ID, REQUIRED_FIELD

SUBJECT_NAME_MIN_LENGTH = 2
SUBJECT_NAME_MAX_LENGTH = 100
COMPETENCY_NAME_MIN_LENGTH = 2
COMPETENCY_NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
MARKS_MIN = 0
MARKS_MAX = 10
# largest value an INTEGER primary key can hold
MAX_ID = 2**63 - 1

NO_FIELDS_SUPPLIED = "At least one field must be provided"
MARKS_NOT_A_NUMBER = "Marks must be a number"
DESCRIPTION_NOT_NULL = "Description must be a string"

T = TypeVar("T")


class _RequestModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", populate_by_name=True)


class _PartialUpdate(_RequestModel):
    """Update payloads: every field optional but at least one required."""

    @model_validator(mode="after")
    def _require_one_field(self):
        if not self.model_fields_set:
            raise ValueError(NO_FIELDS_SUPPLIED)
        return self

    def changes(self) -> dict:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


def _reject_bool(value, message):
    # JSON true/false would otherwise be coerced to 1/0
    if isinstance(value, bool):
        raise ValueError(message)
    return value


class SubjectCreate(_RequestModel):
    """Payload for creating a subject."""
    name: str = Field(min_length=SUBJECT_NAME_MIN_LENGTH, max_length=SUBJECT_NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)

    @field_validator("description", mode="before")
    @classmethod
    def _description_not_null(cls, value):
        if value is None:
            raise ValueError(DESCRIPTION_NOT_NULL)
        return value


class SubjectUpdate(_PartialUpdate):
    """Partial subject update; `description` may be cleared with "" or null."""
    name: Optional[str] = Field(default=None, min_length=SUBJECT_NAME_MIN_LENGTH, max_length=SUBJECT_NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_null(cls, value):
        if value is None:
            raise ValueError(REQUIRED_FIELD)
        return value


class CompetencyCreate(_RequestModel):
    """Payload for creating a competency under `subjectId`."""
    subject_id: int = Field(alias="subjectId", gt=0, le=MAX_ID)
    name: str = Field(min_length=COMPETENCY_NAME_MIN_LENGTH, max_length=COMPETENCY_NAME_MAX_LENGTH)
    marks: float = Field(ge=MARKS_MIN, le=MARKS_MAX)

    @field_validator("subject_id", mode="before")
    @classmethod
    def _subject_id_not_bool(cls, value):
        return _reject_bool(value, INVALID_ID)

    @field_validator("marks", mode="before")
    @classmethod
    def _marks_not_bool(cls, value):
        return _reject_bool(value, MARKS_NOT_A_NUMBER)

    @field_validator("marks")
    @classmethod
    def _two_decimals(cls, value):
        return round(value, 2)


class CompetencyUpdate(_PartialUpdate):
    """Partial competency update. The owning subject cannot be changed."""
    name: Optional[str] = Field(default=None, min_length=COMPETENCY_NAME_MIN_LENGTH, max_length=COMPETENCY_NAME_MAX_LENGTH)
    marks: Optional[float] = Field(default=None, ge=MARKS_MIN, le=MARKS_MAX)

    @field_validator("name", "marks", mode="before")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError(REQUIRED_FIELD)
        return value

    @field_validator("marks", mode="before")
    @classmethod
    def _marks_not_bool(cls, value):
        return _reject_bool(value, MARKS_NOT_A_NUMBER)

    @field_validator("marks")
    @classmethod
    def _two_decimals(cls, value):
        return round(value, 2)


class IdParam(BaseModel):
    """Route identifier: a positive integer that fits a 64-bit column."""
    id: int = Field(gt=0, le=MAX_ID)

    @field_validator("id", mode="before")
    @classmethod
    def _id_not_bool(cls, value):
        return _reject_bool(value, INVALID_ID)


class _RecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class SubjectOut(_RecordOut):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CompetencyOut(_RecordOut):
    id: int
    subject_id: int
    name: str
    marks: float
    created_at: datetime
    updated_at: datetime


class FieldError(BaseModel):
    field: Optional[str] = None
    message: str


class Envelope(BaseModel, Generic[T]):
    """Uniform wrapper returned by every endpoint."""
    success: bool
    message: str
    data: Optional[T] = None
    error: Optional[str] = None
    errors: Optional[List[FieldError]] = None
    timestamp: str


def dump_record(record: Any, schema) -> dict:
    """Serialize an ORM row (or list of rows) with camelCase keys."""
    if isinstance(record, list):
        return [dump_record(r, schema) for r in record]
    return schema.model_validate(record).model_dump(mode="json", by_alias=True)
