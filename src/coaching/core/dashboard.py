"""Dashboard view-models (F4).

Read-mostly data for the parent and student dashboards. Loaders return
plain dataclasses; screen-level redirects are raised as DashboardRedirect.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

import structlog

from coaching.api.client import (
    ApiClient,
    Found,
    NotFound,
    TransientError,
    lookup,
)
from coaching.api.schemas import ChildProfile, DiagnosticTest, ExamSelection, User
from coaching.core.countdown import days_until
from coaching.core.lifecycle import FetchScope
from coaching.session.service import SessionService

logger = structlog.get_logger(__name__)

AUTH_ROUTE = "/auth"
STUDENT_DASHBOARD_ROUTE = "/dashboard"
PARENT_DASHBOARD_ROUTE = "/parent-dashboard"

TestSource = Literal["remote", "cache"]


class DashboardRedirect(Exception):
    """The requested dashboard is not the right one for this session."""

    def __init__(self, route: str):
        self.route = route
        super().__init__(f"Redirect to {route}")


@dataclass
class ParentDashboard:
    user: User
    child: ChildProfile | None = None
    exam_selection: ExamSelection | None = None
    diagnostic_test: DiagnosticTest | None = None
    test_source: TestSource | None = None
    days_until_exam: int | None = None

    @property
    def needs_scheduling(self) -> bool:
        """Exam chosen but no diagnostic test booked yet."""
        return self.exam_selection is not None and self.diagnostic_test is None


@dataclass
class StudentDashboard:
    user: User
    exam_selection: ExamSelection | None = None
    upcoming_test: DiagnosticTest | None = None
    days_until_exam: int | None = None

    @property
    def first_name(self) -> str:
        return self.user.full_name.split(" ")[0]


def pick_active_test(tests: list[DiagnosticTest]) -> DiagnosticTest | None:
    """Prefer a scheduled or pending test, else the most recent one."""
    for test in tests:
        if test.status in ("scheduled", "pending"):
            return test
    if not tests:
        return None
    return max(tests, key=lambda t: t.created_at or "")


def _require_role(session: SessionService, role: str) -> User:
    user = session.user
    if user is None:
        raise DashboardRedirect(AUTH_ROUTE)
    is_student = user.role == "student" or user.is_student
    if role == "parent" and is_student:
        raise DashboardRedirect(STUDENT_DASHBOARD_ROUTE)
    if role == "student" and not is_student:
        raise DashboardRedirect(PARENT_DASHBOARD_ROUTE)
    return user


async def _load_exam_and_test(
    client: ApiClient,
    session: SessionService,
    child_id: str,
    scope_name: str,
) -> tuple[ExamSelection | None, DiagnosticTest | None, TestSource | None]:
    async with FetchScope(scope_name) as scope:
        exam_task = scope.spawn(lookup(client.get_exam_selection(child_id)))
        tests_task = scope.spawn(lookup(client.get_scheduled_tests(child_id)))
        exam = await exam_task
        tests = await tests_task

    exam_selection = exam.data if isinstance(exam, Found) else None

    test: DiagnosticTest | None = None
    source: TestSource | None = None
    if isinstance(tests, Found):
        test = pick_active_test(tests.data)
        source = "remote" if test else None

    if test is None:
        cached = session.cached_scheduled_test()
        if cached:
            try:
                test = DiagnosticTest.model_validate(cached)
                source = "cache"
            except ValueError:
                logger.warning("scheduled_test_cache_invalid")
        if isinstance(tests, TransientError):
            logger.info("scheduled_tests_unavailable", child_id=child_id, from_cache=test is not None)

    return exam_selection, test, source


async def load_parent_dashboard(
    client: ApiClient,
    session: SessionService,
    now: datetime | None = None,
) -> ParentDashboard:
    """Load child, exam selection and diagnostic test for a parent.

    Raises:
        DashboardRedirect: No session (-> /auth) or a student session (-> /dashboard)
    """
    user = _require_role(session, "parent")
    dashboard = ParentDashboard(user=user)

    child = await lookup(client.get_child_profile(user.id))
    if isinstance(child, NotFound):
        return dashboard
    if isinstance(child, TransientError):
        logger.info("dashboard_child_unavailable", parent_id=user.id)
        return dashboard

    dashboard.child = child.data
    exam, test, source = await _load_exam_and_test(
        client, session, child.data.child_id, "parent-dashboard"
    )
    dashboard.exam_selection = exam
    dashboard.diagnostic_test = test
    dashboard.test_source = source
    if exam is not None:
        dashboard.days_until_exam = days_until(exam.exam_date, now)

    logger.info(
        "parent_dashboard_loaded",
        parent_id=user.id,
        has_child=True,
        has_exam=exam is not None,
        test_source=source,
    )
    return dashboard


async def load_student_dashboard(
    client: ApiClient,
    session: SessionService,
    now: datetime | None = None,
) -> StudentDashboard:
    """Load the student's own exam selection and upcoming test.

    Raises:
        DashboardRedirect: No session (-> /auth) or a parent session (-> /parent-dashboard)
    """
    user = _require_role(session, "student")
    exam, test, _ = await _load_exam_and_test(client, session, user.id, "student-dashboard")

    return StudentDashboard(
        user=user,
        exam_selection=exam,
        upcoming_test=test,
        days_until_exam=days_until(exam.exam_date, now) if exam else None,
    )


async def resolve_child_id(client: ApiClient, session: SessionService) -> str | None:
    """Child id for the session: parents go through their child profile."""
    user = session.user
    if user is None:
        raise DashboardRedirect(AUTH_ROUTE)
    if user.role == "student" or user.is_student:
        return user.id

    child = await lookup(client.get_child_profile(user.id))
    if isinstance(child, Found):
        return child.data.child_id
    return None


def home_route(user: User) -> str:
    """Dashboard a user lands on."""
    if user.role == "student" or user.is_student:
        return STUDENT_DASHBOARD_ROUTE
    return PARENT_DASHBOARD_ROUTE
