"""Tests for diagnostic test scheduling (F3)."""

from datetime import date, timedelta, timezone

import pytest

from coaching.api.client import ApiConnectionError, ApiNotFoundError
from coaching.api.schemas import (
    ChildProfile,
    ChildProfileForm,
    DiagnosticTest,
    ExamSelection,
    ExamSelectionRequest,
    OnboardingStatus,
    PreferencesForm,
    ScheduleRequest,
    User,
)
from coaching.core.scheduling import (
    LOAD_ERROR,
    NO_EXAM_ERROR,
    SUBMIT_ERROR,
    SchedulingContext,
    SchedulingError,
    SchedulingWidget,
    WidgetState,
    calendar_grid,
    check_scheduling_guard,
    generate_month_slots,
    new_test_id,
    shift_month,
)
from coaching.session.service import SessionService
from coaching.session.store import LocalStore

# Monday
TODAY = date(2026, 10, 19)
IST = timezone(timedelta(hours=5, minutes=30))

CHILD = ChildProfile(
    child_id="c1",
    parent_id="p1",
    name="Ravi",
    age=16,
    grade=11,
    current_level="beginner",
    username="ravi_11",
)
EXAM = ExamSelection(
    child_id="c1",
    exam_type="JEE_MAIN",
    exam_date="2027-01-22",
    subject_preferences={"Physics": 34, "Chemistry": 33, "Mathematics": 33},
)


@pytest.fixture
def session(tmp_path) -> SessionService:
    return SessionService(LocalStore(tmp_path / "state")).init()


def _login_as(session: SessionService, parent_id: str, token: str) -> None:
    session.user = User(id=parent_id, email="asha@example.com", full_name="Asha Verma", role="parent")
    session.token = token


class TestGenerateMonthSlots:
    """Tests for the month calendar of bookable days."""

    def test_one_entry_per_day(self):
        slots = generate_month_slots(2026, 11, today=TODAY)
        assert len(slots) == 30
        assert [s.day_number for s in slots] == list(range(1, 31))

    def test_weekends_have_no_slots(self):
        slots = generate_month_slots(2026, 11, today=TODAY)
        for slot in slots:
            if slot.date.weekday() >= 5:
                assert slot.time_slots == []
                assert not slot.is_selectable

    def test_weekdays_have_five_slots(self):
        slots = generate_month_slots(2026, 11, today=TODAY)
        weekday = next(s for s in slots if s.date == date(2026, 11, 2))
        assert [t.time for t in weekday.time_slots] == ["09:00", "11:00", "14:00", "16:00", "18:00"]
        assert weekday.time_slots[2].label == "02:00 PM"
        assert weekday.time_slots[0].id == "2026-11-02-09:00"
        assert all(t.available for t in weekday.time_slots)

    @pytest.mark.parametrize(
        "year,month",
        [
            (2026, 10),  # current month, starts on a Thursday
            (2026, 11),  # starts on a Sunday
            (2027, 5),  # starts on a Saturday
            (2028, 2),  # leap February
            (2026, 9),  # entirely in the past
        ],
    )
    def test_every_bookable_weekday_has_all_times(self, year, month):
        expected = ["09:00", "11:00", "14:00", "16:00", "18:00"]
        for slot in generate_month_slots(year, month, today=TODAY):
            if slot.date.weekday() < 5 and slot.date >= TODAY:
                assert [t.time for t in slot.time_slots] == expected, slot.date
                assert slot.is_selectable
            else:
                assert slot.time_slots == [], slot.date
                assert not slot.is_selectable

    def test_past_days_have_no_slots(self):
        slots = generate_month_slots(2026, 10, today=TODAY)
        selectable = [s.day_number for s in slots if s.is_selectable]
        assert selectable == [19, 20, 21, 22, 23, 26, 27, 28, 29, 30]

    def test_today_is_bookable(self):
        slots = generate_month_slots(2026, 10, today=TODAY)
        assert slots[18].date == TODAY
        assert slots[18].is_selectable

    def test_custom_slot_times(self):
        slots = generate_month_slots(2026, 11, today=TODAY, slot_times=["10:00"])
        assert [t.time for t in slots[1].time_slots] == ["10:00"]

    def test_leap_february(self):
        assert len(generate_month_slots(2028, 2, today=TODAY)) == 29

    def test_day_names(self):
        slots = generate_month_slots(2026, 10, today=TODAY)
        assert slots[18].day_name == "Monday"
        assert slots[18].date_string == "2026-10-19"


class TestCalendarGrid:
    """Tests for the Sunday-first month grid."""

    def test_leading_blanks(self):
        """October 2026 starts on a Thursday."""
        grid = calendar_grid(2026, 10, generate_month_slots(2026, 10, today=TODAY))
        assert grid[0][:4] == [None, None, None, None]
        assert grid[0][4].day_number == 1

    def test_full_weeks(self):
        grid = calendar_grid(2026, 10, generate_month_slots(2026, 10, today=TODAY))
        assert all(len(week) == 7 for week in grid)
        assert len(grid) == 5
        days = [cell.day_number for week in grid for cell in week if cell is not None]
        assert days == list(range(1, 32))

    def test_month_starting_sunday(self):
        """November 2026 starts on a Sunday: no leading blanks."""
        grid = calendar_grid(2026, 11, generate_month_slots(2026, 11, today=TODAY))
        assert grid[0][0].day_number == 1


class TestHelpers:
    def test_shift_month(self):
        assert shift_month(2026, 12, 1) == (2027, 1)
        assert shift_month(2027, 1, -1) == (2026, 12)
        assert shift_month(2026, 10, 0) == (2026, 10)
        assert shift_month(2026, 10, 14) == (2027, 12)

    def test_new_test_id_unique(self):
        ids = {new_test_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(i.startswith("test_") for i in ids)


class FakeScheduler:
    """Client stand-in whose booking call can be made to fail."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.requests: list[ScheduleRequest] = []

    async def schedule_diagnostic_test(self, request):
        self.requests.append(request)
        if self.failures:
            self.failures -= 1
            raise ApiConnectionError("network down")
        return DiagnosticTest(
            test_id=request.test_id,
            exam_type=request.exam_type,
            student_id=request.child_id,
            scheduled_date=request.scheduled_date,
        )


def _widget(client, session) -> SchedulingWidget:
    return SchedulingWidget(
        client,
        session,
        SchedulingContext(child=CHILD, exam_selection=EXAM),
        today=TODAY,
        tz=IST,
    )


class TestSchedulingWidget:
    """Tests for the calendar -> time -> confirm interaction."""

    def test_starts_on_current_month(self, session):
        widget = _widget(FakeScheduler(), session)
        assert widget.state is WidgetState.CALENDAR
        assert widget.month_label == "October 2026"

    def test_month_navigation(self, session):
        widget = _widget(FakeScheduler(), session)
        widget.next_month()
        assert widget.month_label == "November 2026"
        widget.previous_month()
        widget.previous_month()
        assert widget.month_label == "September 2026"
        assert not any(d.is_selectable for d in widget.days)

    def test_weekend_and_past_days_ignored(self, session):
        widget = _widget(FakeScheduler(), session)
        assert widget.select_day(date(2026, 10, 24)) is False
        assert widget.select_day(date(2026, 10, 16)) is False
        assert widget.state is WidgetState.CALENDAR
        assert widget.selected_day is None

    def test_select_day_opens_time_picker(self, session):
        widget = _widget(FakeScheduler(), session)
        assert widget.select_day(date(2026, 10, 21)) is True
        assert widget.state is WidgetState.TIME_PICKER
        assert widget.selected_day.date_string == "2026-10-21"

    def test_select_day_in_other_month(self, session):
        widget = _widget(FakeScheduler(), session)
        assert widget.select_day(date(2026, 11, 3))
        assert widget.month_label == "November 2026"

    def test_time_requires_day(self, session):
        widget = _widget(FakeScheduler(), session)
        with pytest.raises(SchedulingError):
            widget.select_time("09:00")

    def test_unknown_time_rejected(self, session):
        widget = _widget(FakeScheduler(), session)
        widget.select_day(date(2026, 10, 21))
        with pytest.raises(SchedulingError):
            widget.select_time("13:00")
        assert widget.state is WidgetState.TIME_PICKER

    def test_changing_day_clears_time(self, session):
        widget = _widget(FakeScheduler(), session)
        widget.select_day(date(2026, 10, 21))
        widget.select_time("09:00")
        widget.select_day(date(2026, 10, 22))
        assert widget.selected_time is None
        assert widget.state is WidgetState.TIME_PICKER

    def test_scheduled_datetime_in_24h(self, session):
        """Afternoon slots keep their 24h hour."""
        widget = _widget(FakeScheduler(), session)
        widget.select_day(date(2026, 10, 21))
        widget.select_time("14:00")
        assert widget.scheduled_datetime().isoformat() == "2026-10-21T14:00:00+05:30"

    def test_build_request(self, session):
        widget = _widget(FakeScheduler(), session)
        widget.select_day(date(2026, 10, 21))
        widget.select_time("09:00")
        request = widget.build_request()
        assert request.child_id == "c1"
        assert request.exam_type == "JEE_MAIN"
        assert request.test_id.startswith("test_")

    @pytest.mark.asyncio
    async def test_confirm_requires_armed(self, session):
        widget = _widget(FakeScheduler(), session)
        widget.select_day(date(2026, 10, 21))
        with pytest.raises(SchedulingError):
            await widget.confirm()

    @pytest.mark.asyncio
    async def test_confirm_books_and_caches(self, session):
        client = FakeScheduler()
        widget = _widget(client, session)
        widget.select_day(date(2026, 10, 21))
        widget.select_time("16:00")

        route = await widget.confirm()

        assert route == "/parent-dashboard"
        assert widget.state is WidgetState.SCHEDULED
        cached = session.cached_scheduled_test()
        assert cached["test_id"] == client.requests[0].test_id
        assert cached["status"] == "scheduled"
        assert cached["scheduled_date"] == "2026-10-21T16:00:00+05:30"
        assert cached["created_at"]

    @pytest.mark.asyncio
    async def test_error_then_retry(self, session):
        client = FakeScheduler(failures=1)
        widget = _widget(client, session)
        widget.select_day(date(2026, 10, 21))
        widget.select_time("11:00")

        assert await widget.confirm() is None
        assert widget.state is WidgetState.ERROR
        assert widget.error == SUBMIT_ERROR
        assert session.cached_scheduled_test() is None

        widget.retry()
        assert widget.state is WidgetState.ARMED
        assert widget.error is None

        assert await widget.confirm() == "/parent-dashboard"
        # Each attempt gets a fresh provisional id
        assert client.requests[0].test_id != client.requests[1].test_id

    def test_retry_without_error(self, session):
        widget = _widget(FakeScheduler(), session)
        with pytest.raises(SchedulingError):
            widget.retry()


class FailingChildClient:
    async def get_onboarding_status(self, parent_id):
        raise ApiNotFoundError("no status", status_code=404)

    async def get_child_profile(self, parent_id):
        raise ApiConnectionError("network down")


class CompletedOnboardingClient:
    """Status says onboarding is done; nothing else may be asked."""

    def __init__(self):
        self.calls: list[str] = []

    async def get_onboarding_status(self, parent_id):
        self.calls.append("status")
        return OnboardingStatus(
            preferences_complete=True,
            child_profile_complete=True,
            exam_selection_complete=True,
            diagnostic_scheduled=True,
            onboarding_complete=True,
            child_id="c1",
        )

    async def get_child_profile(self, parent_id):
        self.calls.append("child")
        return CHILD

    async def get_scheduled_tests(self, child_id):
        self.calls.append("tests")
        return []

    async def get_exam_selection(self, child_id):
        self.calls.append("exam")
        return EXAM


def _onboard(sandbox_store, parent_id, with_exam=True):
    sandbox_store.create_preferences(
        parent_id, PreferencesForm(language="en", teaching_involvement="high")
    )
    child = sandbox_store.create_child(
        parent_id,
        ChildProfileForm(
            name="Ravi",
            age=16,
            grade=11,
            current_level="beginner",
            username="ravi_11",
            password="physics42",
        ),
    )
    if with_exam:
        sandbox_store.select_exam(
            parent_id,
            child.child_id,
            ExamSelectionRequest(
                exam_type="JEE_MAIN",
                exam_date="2027-01-22",
                subject_preferences={"Physics": 34, "Chemistry": 33, "Mathematics": 33},
            ),
        )
    return child


class TestSchedulingGuard:
    """Tests for the checks run before the calendar renders."""

    @pytest.mark.asyncio
    async def test_logged_out(self, session, make_client):
        async with make_client() as client:
            outcome = await check_scheduling_guard(client, session)
        assert outcome.redirect == "/auth"

    @pytest.mark.asyncio
    async def test_no_child_profile(self, session, make_client, parent_account):
        _login_as(session, parent_account["parent_id"], parent_account["token"])
        async with make_client(token=parent_account["token"]) as client:
            outcome = await check_scheduling_guard(client, session)
        assert outcome.redirect == "/onboarding/child-profile"

    @pytest.mark.asyncio
    async def test_no_exam_selection(self, session, sandbox_store, make_client, parent_account):
        _onboard(sandbox_store, parent_account["parent_id"], with_exam=False)
        _login_as(session, parent_account["parent_id"], parent_account["token"])
        async with make_client(token=parent_account["token"]) as client:
            outcome = await check_scheduling_guard(client, session)

        assert outcome.redirect is None
        assert outcome.error == NO_EXAM_ERROR
        assert not outcome.can_render

    @pytest.mark.asyncio
    async def test_ready_to_schedule(self, session, sandbox_store, make_client, parent_account):
        child = _onboard(sandbox_store, parent_account["parent_id"])
        _login_as(session, parent_account["parent_id"], parent_account["token"])
        async with make_client(token=parent_account["token"]) as client:
            outcome = await check_scheduling_guard(client, session)

        assert outcome.can_render
        assert outcome.context.child.child_id == child.child_id
        assert outcome.context.exam_selection.exam_type.value == "JEE_MAIN"

    @pytest.mark.asyncio
    async def test_already_scheduled_redirects(
        self, session, sandbox_store, make_client, parent_account
    ):
        child = _onboard(sandbox_store, parent_account["parent_id"])
        sandbox_store.schedule_test(
            ScheduleRequest(
                child_id=child.child_id,
                exam_type="JEE_MAIN",
                scheduled_date="2026-10-21T09:00:00+05:30",
                test_id="test_existing",
            )
        )
        _login_as(session, parent_account["parent_id"], parent_account["token"])
        async with make_client(token=parent_account["token"]) as client:
            outcome = await check_scheduling_guard(client, session)

        assert outcome.redirect == "/parent-dashboard"

    @pytest.mark.asyncio
    async def test_cached_test_redirects(self, session, make_client, parent_account):
        _login_as(session, parent_account["parent_id"], parent_account["token"])
        session.cache_scheduled_test({"test_id": "t1", "status": "scheduled"})
        async with make_client(token=parent_account["token"]) as client:
            outcome = await check_scheduling_guard(client, session)
        assert outcome.redirect == "/parent-dashboard"

    @pytest.mark.asyncio
    async def test_onboarded_parent_sent_to_dashboard(self, session):
        """Nothing cached locally, but the backend reports onboarding complete."""
        _login_as(session, "p1", "tok")
        client = CompletedOnboardingClient()

        outcome = await check_scheduling_guard(client, session)

        assert outcome.redirect == "/parent-dashboard"
        assert not outcome.can_render
        assert client.calls == ["status"]

    @pytest.mark.asyncio
    async def test_onboarded_parent_against_sandbox(
        self, session, sandbox_store, make_client, parent_account
    ):
        child = _onboard(sandbox_store, parent_account["parent_id"])
        sandbox_store.schedule_test(
            ScheduleRequest(
                child_id=child.child_id,
                exam_type="JEE_MAIN",
                scheduled_date="2026-10-21T09:00:00+05:30",
                test_id="test_done",
            )
        )
        _login_as(session, parent_account["parent_id"], parent_account["token"])
        async with make_client(token=parent_account["token"]) as client:
            status = await client.get_onboarding_status(parent_account["parent_id"])
            outcome = await check_scheduling_guard(client, session)

        assert status.onboarding_complete
        assert session.cached_scheduled_test() is None
        assert outcome.redirect == "/parent-dashboard"

    @pytest.mark.asyncio
    async def test_child_lookup_failure(self, session):
        _login_as(session, "p1", "tok")
        outcome = await check_scheduling_guard(FailingChildClient(), session)
        assert outcome.error == LOAD_ERROR
        assert outcome.redirect is None


class TestBookingAgainstSandbox:
    """End to end: guard, widget, backend record, cache."""

    @pytest.mark.asyncio
    async def test_book_and_block_second_booking(
        self, session, sandbox_store, make_client, parent_account
    ):
        child = _onboard(sandbox_store, parent_account["parent_id"])
        _login_as(session, parent_account["parent_id"], parent_account["token"])

        async with make_client(token=parent_account["token"]) as client:
            outcome = await check_scheduling_guard(client, session)
            widget = SchedulingWidget(client, session, outcome.context, today=TODAY, tz=IST)
            widget.select_day(date(2026, 10, 22))
            widget.select_time("09:00")
            assert await widget.confirm() == "/parent-dashboard"

            tests = sandbox_store.tests_for(child.child_id)
            assert len(tests) == 1
            assert tests[0].test_id == widget.scheduled.test_id
            assert tests[0].scheduled_date == "2026-10-22T09:00:00+05:30"

            # A second widget hitting the backend directly is refused
            other = SchedulingWidget(client, session, outcome.context, today=TODAY, tz=IST)
            other.select_day(date(2026, 10, 23))
            other.select_time("09:00")
            assert await other.confirm() is None
            assert other.state is WidgetState.ERROR

            # And the guard now sends the parent to the dashboard
            assert (await check_scheduling_guard(client, session)).redirect == "/parent-dashboard"
