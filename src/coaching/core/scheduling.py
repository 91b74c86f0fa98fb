"""Diagnostic test scheduling (F3).

Builds the month calendar of bookable slots and drives the booking
interaction:

    CALENDAR --select_day--> TIME_PICKER --select_time--> ARMED
    ARMED --confirm--> SUBMITTING --> SCHEDULED | ERROR
    ERROR --retry--> ARMED

Weekends and past days carry no slots. Every other day offers the same
fixed times. A successful booking is cached in the session store so
dashboards can show it without another round trip.
"""

from __future__ import annotations

import calendar
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from enum import Enum, auto

import structlog

from coaching.api.client import (
    ApiClient,
    ApiError,
    NotFound,
    TransientError,
    lookup,
)
from coaching.api.schemas import (
    ChildProfile,
    DiagnosticTest,
    ExamSelection,
    ScheduleRequest,
)
from coaching.session.service import SessionService

logger = structlog.get_logger(__name__)

SLOT_TIMES: tuple[str, ...] = ("09:00", "11:00", "14:00", "16:00", "18:00")

PARENT_DASHBOARD_ROUTE = "/parent-dashboard"
CHILD_PROFILE_ROUTE = "/onboarding/child-profile"
AUTH_ROUTE = "/auth"

ACTIVE_TEST_STATUSES = ("scheduled", "pending")

LOAD_ERROR = "Failed to load scheduling information. Please try again."
NO_EXAM_ERROR = "No exam selection found. Please select an exam first."
SUBMIT_ERROR = "Failed to schedule diagnostic test. Please try again."


class SchedulingError(Exception):
    """Invalid interaction with the scheduling widget."""

    pass


# =============================================================================
# SLOT GENERATION
# =============================================================================


def _slot_label(hhmm: str) -> str:
    """'14:00' -> '02:00 PM'."""
    return datetime.strptime(hhmm, "%H:%M").strftime("%I:%M %p")


@dataclass
class TimeSlot:
    """A bookable start time on a given day."""

    id: str
    time: str
    label: str
    available: bool = True


@dataclass
class DaySlot:
    """One calendar day with its bookable times (empty when not bookable)."""

    date: date
    time_slots: list[TimeSlot] = field(default_factory=list)

    @property
    def date_string(self) -> str:
        return self.date.isoformat()

    @property
    def day_name(self) -> str:
        return self.date.strftime("%A")

    @property
    def day_number(self) -> int:
        return self.date.day

    @property
    def is_selectable(self) -> bool:
        return bool(self.time_slots)


def generate_month_slots(
    year: int,
    month: int,
    today: date | None = None,
    slot_times: Sequence[str] = SLOT_TIMES,
) -> list[DaySlot]:
    """Build one DaySlot per day of the month.

    Args:
        year: Calendar year
        month: Month number (1-12)
        today: Reference day; earlier days are not bookable
        slot_times: "HH:MM" start times offered on bookable days

    Returns:
        List with one entry per calendar day, in order.
    """
    if today is None:
        today = date.today()

    days_in_month = calendar.monthrange(year, month)[1]
    slots: list[DaySlot] = []

    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)

        # weekday(): Saturday=5, Sunday=6
        if day < today or day.weekday() >= 5:
            slots.append(DaySlot(date=day))
            continue

        date_string = day.isoformat()
        slots.append(
            DaySlot(
                date=day,
                time_slots=[
                    TimeSlot(id=f"{date_string}-{t}", time=t, label=_slot_label(t))
                    for t in slot_times
                ],
            )
        )

    return slots


def calendar_grid(
    year: int, month: int, slots: Sequence[DaySlot]
) -> list[list[DaySlot | None]]:
    """Arrange a month's slots into Sunday-first weeks padded with None."""
    by_day = {slot.day_number: slot for slot in slots}
    leading = (date(year, month, 1).weekday() + 1) % 7
    days_in_month = calendar.monthrange(year, month)[1]

    cells: list[DaySlot | None] = [None] * leading
    cells.extend(by_day.get(d) for d in range(1, days_in_month + 1))
    while len(cells) % 7:
        cells.append(None)

    return [cells[i : i + 7] for i in range(0, len(cells), 7)]


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by delta months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def new_test_id() -> str:
    """Provisional test id; the backend's id replaces it when returned."""
    return f"test_{uuid.uuid4().hex}"


# =============================================================================
# GUARD
# =============================================================================


@dataclass
class SchedulingContext:
    """What the widget needs to book a test."""

    child: ChildProfile
    exam_selection: ExamSelection


@dataclass
class GuardOutcome:
    """Result of the pre-render checks: redirect, error, or go ahead."""

    redirect: str | None = None
    error: str | None = None
    context: SchedulingContext | None = None

    @property
    def can_render(self) -> bool:
        return self.context is not None


async def check_scheduling_guard(
    client: ApiClient, session: SessionService
) -> GuardOutcome:
    """Decide whether the calendar may be rendered.

    Redirects away when onboarding is already complete or a test is
    already booked, so a parent cannot book twice.
    """
    user = session.user
    if user is None:
        return GuardOutcome(redirect=AUTH_ROUTE)

    try:
        status = await client.get_onboarding_status(user.id)
        if status.onboarding_complete:
            logger.info("scheduling_guard_redirect", reason="onboarding_complete")
            return GuardOutcome(redirect=PARENT_DASHBOARD_ROUTE)
    except ApiError as e:
        logger.info("onboarding_status_unavailable", parent_id=user.id, error=str(e))

    cached = session.cached_scheduled_test()
    if cached and cached.get("status") == "scheduled":
        logger.info("scheduling_guard_redirect", reason="cached_test")
        return GuardOutcome(redirect=PARENT_DASHBOARD_ROUTE)

    child = await lookup(client.get_child_profile(user.id))
    if isinstance(child, NotFound):
        return GuardOutcome(redirect=CHILD_PROFILE_ROUTE)
    if isinstance(child, TransientError):
        return GuardOutcome(error=LOAD_ERROR)

    tests = await lookup(client.get_scheduled_tests(child.data.child_id))
    if isinstance(tests, TransientError):
        return GuardOutcome(error=LOAD_ERROR)
    if not isinstance(tests, NotFound) and any(
        t.status in ACTIVE_TEST_STATUSES for t in tests.data
    ):
        logger.info("scheduling_guard_redirect", reason="remote_test")
        return GuardOutcome(redirect=PARENT_DASHBOARD_ROUTE)

    exam = await lookup(client.get_exam_selection(child.data.child_id))
    if isinstance(exam, NotFound):
        return GuardOutcome(error=NO_EXAM_ERROR)
    if isinstance(exam, TransientError):
        return GuardOutcome(error=LOAD_ERROR)

    return GuardOutcome(
        context=SchedulingContext(child=child.data, exam_selection=exam.data)
    )


# =============================================================================
# WIDGET
# =============================================================================


class WidgetState(Enum):
    CALENDAR = auto()
    TIME_PICKER = auto()
    ARMED = auto()
    SUBMITTING = auto()
    SCHEDULED = auto()
    ERROR = auto()


class SchedulingWidget:
    """Calendar + time picker + confirm action for one child."""

    def __init__(
        self,
        client: ApiClient,
        session: SessionService,
        context: SchedulingContext,
        today: date | None = None,
        slot_times: Sequence[str] = SLOT_TIMES,
        tz: tzinfo | None = None,
    ):
        self.client = client
        self.session = session
        self.context = context
        self.today = today or date.today()
        self.slot_times = tuple(slot_times)
        self.tz = tz

        self.year = self.today.year
        self.month = self.today.month
        self.days = generate_month_slots(self.year, self.month, self.today, self.slot_times)

        self.state = WidgetState.CALENDAR
        self.selected_day: DaySlot | None = None
        self.selected_time: TimeSlot | None = None
        self.error: str | None = None
        self.scheduled: DiagnosticTest | None = None

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def show_month(self, year: int, month: int) -> None:
        self.year, self.month = year, month
        self.days = generate_month_slots(year, month, self.today, self.slot_times)
        self.selected_day = None
        self.selected_time = None
        self.state = WidgetState.CALENDAR

    def next_month(self) -> None:
        self.show_month(*shift_month(self.year, self.month, 1))

    def previous_month(self) -> None:
        self.show_month(*shift_month(self.year, self.month, -1))

    def grid(self) -> list[list[DaySlot | None]]:
        return calendar_grid(self.year, self.month, self.days)

    @property
    def month_label(self) -> str:
        return date(self.year, self.month, 1).strftime("%B %Y")

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_day(self, day: date) -> bool:
        """Open the time picker for a bookable day; other days are ignored."""
        if (day.year, day.month) != (self.year, self.month):
            self.show_month(day.year, day.month)

        slot = next((d for d in self.days if d.date == day), None)
        if slot is None or not slot.is_selectable:
            return False

        self.selected_day = slot
        self.selected_time = None
        self.state = WidgetState.TIME_PICKER
        return True

    def select_time(self, hhmm: str) -> TimeSlot:
        """Pick a time on the selected day and arm the confirm action."""
        if self.selected_day is None:
            raise SchedulingError("Select a date before choosing a time")

        slot = next(
            (s for s in self.selected_day.time_slots if s.time == hhmm and s.available),
            None,
        )
        if slot is None:
            raise SchedulingError(
                f"{hhmm} is not available on {self.selected_day.date_string}"
            )

        self.selected_time = slot
        self.state = WidgetState.ARMED
        return slot

    def scheduled_datetime(self) -> datetime:
        """Selected date and time as an aware datetime in local time."""
        if self.selected_day is None or self.selected_time is None:
            raise SchedulingError("Please select both date and time for your diagnostic test")

        hours, minutes = (int(p) for p in self.selected_time.time.split(":"))
        naive = datetime.combine(self.selected_day.date, time(hours, minutes))
        if self.tz is not None:
            return naive.replace(tzinfo=self.tz)
        return naive.astimezone()

    def build_request(self, test_id: str | None = None) -> ScheduleRequest:
        return ScheduleRequest(
            child_id=self.context.child.child_id,
            exam_type=self.context.exam_selection.exam_type.value,
            scheduled_date=self.scheduled_datetime().isoformat(),
            test_id=test_id or new_test_id(),
        )

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def confirm(self) -> str | None:
        """Book the selected slot.

        Returns:
            Redirect route on success, None when the booking failed
            (state ERROR, message in self.error).
        """
        if self.state is not WidgetState.ARMED:
            raise SchedulingError("Please select both date and time for your diagnostic test")

        request = self.build_request()
        self.state = WidgetState.SUBMITTING

        try:
            test = await self.client.schedule_diagnostic_test(request)
        except ApiError as e:
            logger.warning(
                "diagnostic_schedule_failed",
                child_id=request.child_id,
                error=str(e),
            )
            self.error = SUBMIT_ERROR
            self.state = WidgetState.ERROR
            return None

        if not test.created_at:
            test.created_at = datetime.now(timezone.utc).isoformat()
        test.status = "scheduled"

        self.session.cache_scheduled_test(test.to_cache())
        self.scheduled = test
        self.error = None
        self.state = WidgetState.SCHEDULED

        logger.info(
            "diagnostic_scheduled",
            child_id=request.child_id,
            test_id=test.test_id,
            scheduled_date=test.scheduled_date,
        )
        return PARENT_DASHBOARD_ROUTE

    def retry(self) -> None:
        """Return from the error panel to the armed confirm action."""
        if self.state is not WidgetState.ERROR:
            raise SchedulingError("Nothing to retry")
        self.error = None
        self.state = WidgetState.ARMED
