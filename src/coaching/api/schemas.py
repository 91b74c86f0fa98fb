"""Pydantic schemas for the coaching REST contract (F1).

Request bodies double as form validators: a ValidationError carries
one entry per offending field, ready to be shown next to that field.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from coaching.core.weights import validate_subject_weights

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_@.]+$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-zA-Z])(?=.*[0-9]).+$")


def validate_email(email: str) -> bool:
    """Check basic email shape (local@domain.tld)."""
    return bool(EMAIL_PATTERN.match(email))


# =============================================================================
# ENUMS
# =============================================================================


class ExamType(str, Enum):
    """Supported competitive examinations."""

    JEE_MAIN = "JEE_MAIN"
    JEE_ADVANCED = "JEE_ADVANCED"
    JEE_COMBO = "JEE_COMBO"
    NEET = "NEET"


Role = Literal["student", "parent"]
Language = Literal["en", "hi", "mr"]
Involvement = Literal["high", "medium", "low"]
Level = Literal["beginner", "intermediate", "advanced"]
TestStatus = Literal["scheduled", "pending", "in_progress", "completed"]


# =============================================================================
# AUTH SCHEMAS
# =============================================================================


class User(BaseModel):
    """Authenticated identity kept in the session."""

    id: str
    email: str
    full_name: str
    role: Role
    is_student: bool = False


class LoginForm(BaseModel):
    """Login form: email for parents, username for students."""

    identifier: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class RegistrationForm(BaseModel):
    """Parent registration form."""

    name: str = Field(..., min_length=2)
    mobile_number: str = Field(..., min_length=10)
    email_address: str
    password: str = Field(..., min_length=6)
    repeat_password: str = Field(..., min_length=6)

    @field_validator("email_address")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if not validate_email(value):
            raise ValueError("Invalid email address")
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> RegistrationForm:
        if self.password != self.repeat_password:
            raise ValueError("Passwords don't match")
        return self


class RegistrationResponse(BaseModel):
    parent_id: str | None = None
    email: str | None = None
    phone: str | None = None
    message: str = ""


# =============================================================================
# ONBOARDING SCHEMAS
# =============================================================================


class PreferencesForm(BaseModel):
    """Parent preferences captured in onboarding step 1."""

    language: Language
    email_notifications: bool = True
    sms_notifications: bool = False
    push_notifications: bool = False
    teaching_involvement: Involvement


class PreferencesUpdate(BaseModel):
    language: Language | None = None
    email_notifications: bool | None = None
    sms_notifications: bool | None = None
    push_notifications: bool | None = None
    teaching_involvement: Involvement | None = None


class Preferences(PreferencesForm):
    parent_id: str


class ChildProfileForm(BaseModel):
    """Child profile with its own login credentials."""

    name: str = Field(..., min_length=2, max_length=100)
    age: int = Field(..., ge=14, le=19)
    grade: int = Field(..., ge=9, le=12)
    current_level: Level
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=8, max_length=50)

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username can contain letters, numbers, underscores, @, and .")
        return value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if not PASSWORD_PATTERN.match(value):
            raise ValueError("Password must contain at least one letter and one number")
        return value


class ChildProfileUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    age: int | None = Field(default=None, ge=14, le=19)
    grade: int | None = Field(default=None, ge=9, le=12)
    current_level: Level | None = None


class ChildProfile(BaseModel):
    """Child profile as returned by the backend (no password)."""

    child_id: str
    parent_id: str | None = None
    name: str
    age: int
    grade: int
    current_level: Level
    username: str


class OnboardingStatus(BaseModel):
    """Aggregate completion flags for a parent."""

    preferences_complete: bool = False
    child_profile_complete: bool = False
    exam_selection_complete: bool = False
    diagnostic_scheduled: bool = False
    onboarding_complete: bool = False
    child_id: str | None = None


# =============================================================================
# EXAM SCHEMAS
# =============================================================================


class AvailableExam(BaseModel):
    exam_type: ExamType
    exam_name: str
    available_dates: list[str] = Field(default_factory=list)
    subjects: list[str] = Field(default_factory=list)


class ExamSelectionRequest(BaseModel):
    """Exam choice submitted once per child."""

    exam_type: ExamType
    exam_date: str
    subject_preferences: dict[str, int]

    @field_validator("subject_preferences")
    @classmethod
    def _check_weights(cls, value: dict[str, int]) -> dict[str, int]:
        return validate_subject_weights(value)


class ExamSelection(BaseModel):
    child_id: str
    exam_type: ExamType
    exam_date: str
    subject_preferences: dict[str, int] = Field(default_factory=dict)
    days_until_exam: int = 0
    diagnostic_test_id: str | None = None
    created_at: str = ""


# =============================================================================
# DIAGNOSTIC TEST SCHEMAS
# =============================================================================


class ScheduleRequest(BaseModel):
    """Booking payload for a diagnostic test."""

    child_id: str
    exam_type: str
    scheduled_date: str
    test_id: str


class DiagnosticTest(BaseModel):
    test_id: str
    exam_type: str = ""
    student_id: str | None = None
    scheduled_date: str | None = None
    duration_minutes: int = 180
    total_questions: int = 200
    status: TestStatus = "scheduled"
    created_at: str = ""

    def to_cache(self) -> dict[str, Any]:
        """Shape stored in the local scheduled-test cache."""
        return {
            "test_id": self.test_id,
            "exam_type": self.exam_type,
            "scheduled_date": self.scheduled_date,
            "status": self.status,
            "created_at": self.created_at,
        }


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    records: dict[str, int] = Field(default_factory=dict)
