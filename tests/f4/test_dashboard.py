"""Tests for parent and student dashboards (F4)."""

from datetime import datetime

import pytest

from coaching.api.client import ApiConnectionError
from coaching.api.schemas import (
    ChildProfile,
    ChildProfileForm,
    DiagnosticTest,
    ExamSelection,
    ExamSelectionRequest,
    PreferencesForm,
    ScheduleRequest,
    User,
)
from coaching.core.dashboard import (
    DashboardRedirect,
    home_route,
    load_parent_dashboard,
    load_student_dashboard,
    pick_active_test,
    resolve_child_id,
)
from coaching.session.service import SessionService
from coaching.session.store import LocalStore

NOW = datetime(2026, 10, 19)

PARENT = User(id="p1", email="asha@example.com", full_name="Asha Verma", role="parent")
STUDENT = User(
    id="c1", email="ravi_11@student.local", full_name="Ravi Verma", role="student", is_student=True
)


@pytest.fixture
def session(tmp_path) -> SessionService:
    return SessionService(LocalStore(tmp_path / "state")).init()


def _onboard(store, parent_id, with_test=False):
    store.create_preferences(parent_id, PreferencesForm(language="en", teaching_involvement="high"))
    child = store.create_child(
        parent_id,
        ChildProfileForm(
            name="Ravi Verma",
            age=17,
            grade=12,
            current_level="advanced",
            username="ravi_12",
            password="physics42",
        ),
    )
    store.select_exam(
        parent_id,
        child.child_id,
        ExamSelectionRequest(
            exam_type="JEE_MAIN",
            exam_date="2027-01-22",
            subject_preferences={"Physics": 40, "Chemistry": 30, "Mathematics": 30},
        ),
    )
    if with_test:
        store.schedule_test(
            ScheduleRequest(
                child_id=child.child_id,
                exam_type="JEE_MAIN",
                scheduled_date="2026-10-21T09:00:00+05:30",
                test_id="test_remote",
            )
        )
    return child


class TestPickActiveTest:
    def test_prefers_scheduled(self):
        tests = [
            DiagnosticTest(test_id="a", status="completed", created_at="2026-10-10"),
            DiagnosticTest(test_id="b", status="pending", created_at="2026-10-01"),
        ]
        assert pick_active_test(tests).test_id == "b"

    def test_latest_when_none_active(self):
        tests = [
            DiagnosticTest(test_id="old", status="completed", created_at="2026-09-01"),
            DiagnosticTest(test_id="new", status="completed", created_at="2026-10-01"),
        ]
        assert pick_active_test(tests).test_id == "new"

    def test_empty(self):
        assert pick_active_test([]) is None


class TestRoleRedirects:
    @pytest.mark.asyncio
    async def test_logged_out(self, session):
        with pytest.raises(DashboardRedirect) as exc_info:
            await load_parent_dashboard(None, session)
        assert exc_info.value.route == "/auth"

    @pytest.mark.asyncio
    async def test_student_on_parent_dashboard(self, session):
        session.user = STUDENT
        with pytest.raises(DashboardRedirect) as exc_info:
            await load_parent_dashboard(None, session)
        assert exc_info.value.route == "/dashboard"

    @pytest.mark.asyncio
    async def test_parent_on_student_dashboard(self, session):
        session.user = PARENT
        with pytest.raises(DashboardRedirect) as exc_info:
            await load_student_dashboard(None, session)
        assert exc_info.value.route == "/parent-dashboard"

    def test_home_route(self):
        assert home_route(PARENT) == "/parent-dashboard"
        assert home_route(STUDENT) == "/dashboard"


class TestParentDashboard:
    @pytest.mark.asyncio
    async def test_no_child_yet(self, session, make_client, parent_account):
        session.user = PARENT.model_copy(update={"id": parent_account["parent_id"]})
        async with make_client(token=parent_account["token"]) as client:
            board = await load_parent_dashboard(client, session, now=NOW)

        assert board.child is None
        assert board.exam_selection is None
        assert not board.needs_scheduling

    @pytest.mark.asyncio
    async def test_needs_scheduling(self, session, sandbox_store, make_client, parent_account):
        _onboard(sandbox_store, parent_account["parent_id"])
        session.user = PARENT.model_copy(update={"id": parent_account["parent_id"]})
        async with make_client(token=parent_account["token"]) as client:
            board = await load_parent_dashboard(client, session, now=NOW)

        assert board.child.name == "Ravi Verma"
        assert board.exam_selection.subject_preferences["Physics"] == 40
        assert board.days_until_exam == 95
        assert board.diagnostic_test is None
        assert board.needs_scheduling

    @pytest.mark.asyncio
    async def test_remote_test(self, session, sandbox_store, make_client, parent_account):
        _onboard(sandbox_store, parent_account["parent_id"], with_test=True)
        session.user = PARENT.model_copy(update={"id": parent_account["parent_id"]})
        async with make_client(token=parent_account["token"]) as client:
            board = await load_parent_dashboard(client, session, now=NOW)

        assert board.diagnostic_test.test_id == "test_remote"
        assert board.test_source == "remote"
        assert not board.needs_scheduling

    @pytest.mark.asyncio
    async def test_cached_test_when_backend_has_none(
        self, session, sandbox_store, make_client, parent_account
    ):
        _onboard(sandbox_store, parent_account["parent_id"])
        session.user = PARENT.model_copy(update={"id": parent_account["parent_id"]})
        session.cache_scheduled_test(
            {
                "test_id": "test_cached",
                "exam_type": "JEE_MAIN",
                "scheduled_date": "2026-10-21T09:00:00+05:30",
                "status": "scheduled",
                "created_at": "2026-10-19T08:00:00+00:00",
            }
        )
        async with make_client(token=parent_account["token"]) as client:
            board = await load_parent_dashboard(client, session, now=NOW)

        assert board.diagnostic_test.test_id == "test_cached"
        assert board.test_source == "cache"


class FlakyTestsClient:
    """Child and exam load; the test list endpoint is down."""

    child = ChildProfile(
        child_id="c1",
        parent_id="p1",
        name="Ravi Verma",
        age=17,
        grade=12,
        current_level="advanced",
        username="ravi_12",
    )
    exam = ExamSelection(child_id="c1", exam_type="NEET", exam_date="2027-05-02")

    async def get_child_profile(self, parent_id):
        return self.child

    async def get_exam_selection(self, child_id):
        return self.exam

    async def get_scheduled_tests(self, child_id):
        raise ApiConnectionError("network down")


class TestDegradedLoad:
    @pytest.mark.asyncio
    async def test_falls_back_to_cache(self, session):
        session.user = PARENT
        session.cache_scheduled_test({"test_id": "test_cached", "status": "scheduled"})

        board = await load_parent_dashboard(FlakyTestsClient(), session, now=NOW)

        assert board.exam_selection.exam_type.value == "NEET"
        assert board.diagnostic_test.test_id == "test_cached"
        assert board.test_source == "cache"

    @pytest.mark.asyncio
    async def test_no_cache_no_test(self, session):
        session.user = PARENT
        board = await load_parent_dashboard(FlakyTestsClient(), session, now=NOW)
        assert board.diagnostic_test is None
        assert board.needs_scheduling


class TestStudentDashboard:
    @pytest.mark.asyncio
    async def test_student_sees_own_exam(self, session, sandbox_store, make_client, parent_account):
        child = _onboard(sandbox_store, parent_account["parent_id"], with_test=True)
        login = sandbox_store.login_student("ravi_12", "physics42")
        session.user = STUDENT.model_copy(update={"id": child.child_id})

        async with make_client(token=login["token"]) as client:
            board = await load_student_dashboard(client, session, now=NOW)
            assert await resolve_child_id(client, session) == child.child_id

        assert board.first_name == "Ravi"
        assert board.exam_selection.exam_date == "2027-01-22"
        assert board.days_until_exam == 95
        assert board.upcoming_test.test_id == "test_remote"


class TestResolveChildId:
    @pytest.mark.asyncio
    async def test_parent_goes_through_profile(
        self, session, sandbox_store, make_client, parent_account
    ):
        child = _onboard(sandbox_store, parent_account["parent_id"])
        session.user = PARENT.model_copy(update={"id": parent_account["parent_id"]})
        async with make_client(token=parent_account["token"]) as client:
            assert await resolve_child_id(client, session) == child.child_id

    @pytest.mark.asyncio
    async def test_parent_without_child(self, session, make_client, parent_account):
        session.user = PARENT.model_copy(update={"id": parent_account["parent_id"]})
        async with make_client(token=parent_account["token"]) as client:
            assert await resolve_child_id(client, session) is None

    @pytest.mark.asyncio
    async def test_logged_out(self, session):
        with pytest.raises(DashboardRedirect):
            await resolve_child_id(None, session)
