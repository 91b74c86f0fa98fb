"""In-memory state for the sandbox backend (F5).

Holds parents, tokens, preferences, child profiles, exam selections and
diagnostic tests. Nothing is persisted; a fresh store is an empty backend.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from coaching.api.schemas import (
    AvailableExam,
    ChildProfile,
    ChildProfileForm,
    DiagnosticTest,
    ExamSelection,
    ExamSelectionRequest,
    ExamType,
    OnboardingStatus,
    Preferences,
    PreferencesForm,
    ScheduleRequest,
)
from coaching.core.countdown import days_until

logger = structlog.get_logger(__name__)

PCM = ["Physics", "Chemistry", "Mathematics"]

AVAILABLE_EXAMS: list[dict[str, Any]] = [
    {
        "exam_type": ExamType.JEE_MAIN,
        "exam_name": "JEE Main",
        "available_dates": ["2027-01-22", "2027-04-04"],
        "subjects": PCM,
    },
    {
        "exam_type": ExamType.JEE_ADVANCED,
        "exam_name": "JEE Advanced",
        "available_dates": ["2027-05-23"],
        "subjects": PCM,
    },
    {
        "exam_type": ExamType.JEE_COMBO,
        "exam_name": "JEE Main + Advanced",
        "available_dates": ["2027-01-22", "2027-04-04", "2027-05-23"],
        "subjects": PCM,
    },
    {
        "exam_type": ExamType.NEET,
        "exam_name": "NEET UG",
        "available_dates": ["2027-05-02"],
        "subjects": ["Physics", "Chemistry", "Biology"],
    },
]


class SandboxError(Exception):
    """Base error for sandbox operations; carries an HTTP status."""

    status_code = 400

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class NotFoundError(SandboxError):
    status_code = 404


class ConflictError(SandboxError):
    status_code = 409


class AuthError(SandboxError):
    status_code = 401


class ForbiddenError(SandboxError):
    status_code = 403


def _hash(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ParentAccount:
    parent_id: str
    name: str
    email: str
    phone: str
    password_hash: str


@dataclass
class SandboxStore:
    """All sandbox records, keyed the way the endpoints look them up."""

    parents: dict[str, ParentAccount] = field(default_factory=dict)
    tokens: dict[str, tuple[str, str]] = field(default_factory=dict)
    preferences: dict[str, Preferences] = field(default_factory=dict)
    children: dict[str, ChildProfile] = field(default_factory=dict)
    child_passwords: dict[str, str] = field(default_factory=dict)
    exam_selections: dict[str, ExamSelection] = field(default_factory=dict)
    tests: dict[str, DiagnosticTest] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def register_parent(self, name: str, email: str, phone: str, password: str) -> ParentAccount:
        if any(p.email == email for p in self.parents.values()):
            raise ConflictError("Email already registered")
        account = ParentAccount(
            parent_id=f"parent_{uuid.uuid4().hex[:12]}",
            name=name,
            email=email,
            phone=phone,
            password_hash=_hash(password),
        )
        self.parents[account.parent_id] = account
        logger.info("sandbox_parent_registered", parent_id=account.parent_id)
        return account

    def _issue_token(self, role: str, subject_id: str) -> str:
        token = secrets.token_urlsafe(24)
        self.tokens[token] = (role, subject_id)
        return token

    def login_parent(self, email: str, password: str) -> dict[str, Any]:
        account = next((p for p in self.parents.values() if p.email == email), None)
        if account is None or account.password_hash != _hash(password):
            raise AuthError("Invalid email or password")
        return {
            "token": self._issue_token("parent", account.parent_id),
            "parent_id": account.parent_id,
            "email": account.email,
            "name": account.name,
        }

    def login_student(self, username: str, password: str) -> dict[str, Any]:
        child = next((c for c in self.children.values() if c.username == username), None)
        if child is None or self.child_passwords.get(child.child_id) != _hash(password):
            raise AuthError("Invalid username or password")
        return {
            "token": self._issue_token("student", child.child_id),
            "student_id": child.child_id,
            "child_id": child.child_id,
            "username": child.username,
            "name": child.name,
            "is_student": True,
        }

    def authenticate(self, token: str | None) -> tuple[str, str]:
        if not token or token not in self.tokens:
            raise AuthError("Not authenticated")
        return self.tokens[token]

    def authorize(
        self,
        principal: tuple[str, str],
        parent_id: str | None = None,
        child_id: str | None = None,
    ) -> None:
        """Parents reach their own records and their child's; students only their own.

        Unknown children pass so the lookup itself can answer 404.
        """
        role, subject = principal
        if parent_id is not None and (role != "parent" or subject != parent_id):
            raise ForbiddenError("Not allowed to access this parent's records")
        if child_id is not None and child_id in self.children:
            owner = self.children[child_id].parent_id
            if not (
                (role == "student" and subject == child_id)
                or (role == "parent" and subject == owner)
            ):
                raise ForbiddenError("Not allowed to access this child's records")

    # -------------------------------------------------------------------------
    # Onboarding
    # -------------------------------------------------------------------------

    def get_preferences(self, parent_id: str) -> Preferences:
        if parent_id not in self.preferences:
            raise NotFoundError("Preferences not found")
        return self.preferences[parent_id]

    def create_preferences(self, parent_id: str, form: PreferencesForm) -> Preferences:
        if parent_id in self.preferences:
            raise ConflictError("Preferences already exist")
        prefs = Preferences(parent_id=parent_id, **form.model_dump())
        self.preferences[parent_id] = prefs
        return prefs

    def update_preferences(self, parent_id: str, changes: dict[str, Any]) -> Preferences:
        current = self.get_preferences(parent_id)
        updated = current.model_copy(update=changes)
        self.preferences[parent_id] = updated
        return updated

    def get_child(self, parent_id: str) -> ChildProfile:
        child = next((c for c in self.children.values() if c.parent_id == parent_id), None)
        if child is None:
            raise NotFoundError("Child profile not found")
        return child

    def create_child(self, parent_id: str, form: ChildProfileForm) -> ChildProfile:
        if any(c.parent_id == parent_id for c in self.children.values()):
            raise ConflictError("Child profile already exists")
        if any(c.username == form.username for c in self.children.values()):
            raise ConflictError("Username already taken")
        child = ChildProfile(
            child_id=f"child_{uuid.uuid4().hex[:12]}",
            parent_id=parent_id,
            **form.model_dump(exclude={"password"}),
        )
        self.children[child.child_id] = child
        self.child_passwords[child.child_id] = _hash(form.password)
        return child

    def update_child(self, parent_id: str, child_id: str, changes: dict[str, Any]) -> ChildProfile:
        child = self.children.get(child_id)
        if child is None or child.parent_id != parent_id:
            raise NotFoundError("Child profile not found")
        password = changes.pop("password", None)
        if password:
            self.child_passwords[child_id] = _hash(password)
        updated = child.model_copy(update=changes)
        self.children[child_id] = updated
        return updated

    def status(self, parent_id: str) -> OnboardingStatus:
        has_prefs = parent_id in self.preferences
        child = next((c for c in self.children.values() if c.parent_id == parent_id), None)
        has_exam = child is not None and child.child_id in self.exam_selections
        scheduled = child is not None and any(
            t.student_id == child.child_id and t.status in ("scheduled", "pending", "in_progress", "completed")
            for t in self.tests.values()
        )
        return OnboardingStatus(
            preferences_complete=has_prefs,
            child_profile_complete=child is not None,
            exam_selection_complete=has_exam,
            diagnostic_scheduled=scheduled,
            onboarding_complete=has_prefs and child is not None and has_exam and scheduled,
            child_id=child.child_id if child else None,
        )

    # -------------------------------------------------------------------------
    # Exams
    # -------------------------------------------------------------------------

    def available_exams(self) -> list[AvailableExam]:
        return [AvailableExam.model_validate(e) for e in AVAILABLE_EXAMS]

    def _refresh_days(self, selection: ExamSelection) -> ExamSelection:
        selection.days_until_exam = max(0, days_until(selection.exam_date))
        return selection

    def select_exam(
        self, parent_id: str, child_id: str, request: ExamSelectionRequest
    ) -> ExamSelection:
        child = self.children.get(child_id)
        if child is None or child.parent_id != parent_id:
            raise NotFoundError("Child profile not found")
        if child_id in self.exam_selections:
            raise ConflictError("Exam already selected for this child")

        exam = next(e for e in AVAILABLE_EXAMS if e["exam_type"] == request.exam_type)
        if request.exam_date not in exam["available_dates"]:
            raise SandboxError(f"{request.exam_date} is not a {exam['exam_name']} date")

        selection = ExamSelection(
            child_id=child_id,
            exam_type=request.exam_type,
            exam_date=request.exam_date,
            subject_preferences=dict(request.subject_preferences),
            diagnostic_test_id=f"diag_{uuid.uuid4().hex[:12]}",
            created_at=_now(),
        )
        self.exam_selections[child_id] = self._refresh_days(selection)
        return selection

    def get_exam_selection(self, child_id: str) -> ExamSelection:
        if child_id not in self.exam_selections:
            raise NotFoundError("Exam selection not found")
        return self._refresh_days(self.exam_selections[child_id])

    def update_subject_preferences(
        self, parent_id: str, child_id: str, weights: dict[str, int]
    ) -> ExamSelection:
        child = self.children.get(child_id)
        if child is None or child.parent_id != parent_id:
            raise NotFoundError("Child profile not found")
        selection = self.get_exam_selection(child_id)
        selection.subject_preferences = dict(weights)
        return selection

    # -------------------------------------------------------------------------
    # Diagnostic tests
    # -------------------------------------------------------------------------

    def schedule_test(self, request: ScheduleRequest) -> DiagnosticTest:
        if request.child_id not in self.children:
            raise NotFoundError("Child profile not found")
        if request.test_id in self.tests:
            raise ConflictError(f"Test '{request.test_id}' already exists")
        if any(
            t.student_id == request.child_id and t.status in ("scheduled", "pending")
            for t in self.tests.values()
        ):
            raise ConflictError("A diagnostic test is already scheduled")

        test = DiagnosticTest(
            test_id=request.test_id,
            exam_type=request.exam_type,
            student_id=request.child_id,
            scheduled_date=request.scheduled_date,
            status="scheduled",
            created_at=_now(),
        )
        self.tests[test.test_id] = test
        return test

    def get_test(self, test_id: str) -> DiagnosticTest:
        if test_id not in self.tests:
            raise NotFoundError("Diagnostic test not found")
        return self.tests[test_id]

    def tests_for(self, child_id: str) -> list[DiagnosticTest]:
        return [t for t in self.tests.values() if t.student_id == child_id]
