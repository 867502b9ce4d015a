"""
colloquy/models.py
Domain records for meetings, questions, feedback and respondents.

Records are immutable pydantic models.  Anything that "changes" a record
(a status transition, an edit) returns a copy via model_copy(update=...), so
snapshots handed to the core are never mutated underneath a reader.
"""

from datetime import date, datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from colloquy.errors import ValidationError


# ─── ENUMS & LOOKUP TABLES ───────────────────────────────────────────────────

MeetingStatus = Literal["scheduled", "rescheduled", "in-progress", "completed", "cancelled"]
QuestionRole  = Literal["student", "staff", "both"]
RoleCategory  = Literal["student", "staff", "other"]

MEETING_STATUSES = ("scheduled", "rescheduled", "in-progress", "completed", "cancelled")

# Statuses the time rule may still move forward.
OPEN_STATUSES = ("scheduled", "rescheduled", "in-progress")

# Meeting.target_role_id values used by the scheduling authority.
ROLE_IDS = {
    "student": 1,
    "staff":   2,
}

RATING_MIN = 1
RATING_MAX = 5


# ─── RECORDS ─────────────────────────────────────────────────────────────────

class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Meeting(_Record):
    id:             int | None = None
    title:          str
    meeting_date:   date
    start_time:     time
    end_time:       time
    status:         MeetingStatus = "scheduled"
    department_id:  int | None = None
    target_role_id: int | None = None
    year:           int | None = None
    description:    str | None = None
    location:       str | None = None
    created_by:     int | None = None


class Question(_Record):
    id:            int | None = None
    text:          str
    role:          QuestionRole = "both"
    year:          int | None = Field(default=None, ge=1, le=5)
    department_id: int | None = None
    meeting_id:    int | None = None
    active:        bool = True


class FeedbackEntry(_Record):
    id:           int | None = None
    rating:       int = Field(ge=RATING_MIN, le=RATING_MAX)
    notes:        str | None = None
    user_id:      int
    question_id:  int
    meeting_id:   int | None = None
    submitted_at: datetime | None = None


class RespondentProfile(_Record):
    id:            int
    username:      str | None = None
    full_name:     str | None = None
    department_id: int | None = None
    year:          int | None = None
    roles:         tuple[str, ...] = ()

    @field_validator("roles", mode="before")
    @classmethod
    def _normalise_roles(cls, value):
        # Role tags arrive as names, {"name": ...} dicts, or NULLs from a LEFT JOIN.
        if value is None:
            return ()
        if isinstance(value, (str, dict)):
            value = [value]
        names = []
        for tag in value:
            if isinstance(tag, dict):
                tag = tag.get("name")
            if tag:
                names.append(str(tag))
        return tuple(names)


class HodResponse(_Record):
    """A head of department's written answer to a question (minutes of meeting)."""

    id:            int | None = None
    question_id:   int
    hod_id:        int
    department_id: int
    meeting_id:    int | None = None
    response:      str | None = None
    responded:     bool = True
    responded_at:  datetime | None = None


# ─── INBOUND PAYLOADS ────────────────────────────────────────────────────────

class MeetingDraft(_Record):
    """Fields a director supplies when creating a meeting."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title:          str = Field(min_length=1)
    meeting_date:   date
    start_time:     time
    end_time:       time
    department_id:  int | None = None
    target_role_id: int
    year:           int | None = None
    description:    str | None = None
    location:       str | None = None

    @model_validator(mode="after")
    def _check(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.target_role_id == ROLE_IDS["student"] and not self.year:
            raise ValueError("year is required for student meetings")
        return self


class FeedbackSubmission(_Record):
    """A respondent's rating for one question."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    question_id: int
    rating:      int = Field(ge=RATING_MIN, le=RATING_MAX)
    notes:       str | None = None
    meeting_id:  int | None = None


class HodResponseSubmission(_Record):
    """A head of department's response payload.  The response text may be empty."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    question_id:   int
    response:      str | None = None
    meeting_id:    int | None = None
    department_id: int | None = None


# ─── PARSING ─────────────────────────────────────────────────────────────────

def parse(model: type[BaseModel], data: dict):
    """
    Build a model from a plain dict, raising colloquy ValidationError.

    Pydantic's own error is chained so the field-level detail stays
    available to callers that want to report it.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}"
            for err in exc.errors()
        )
        raise ValidationError(details) from exc
