"""CLI commands for the coaching client (F6).

Session:
- login, register, logout, whoami

Onboarding (parents):
- status: which onboarding step comes next
- preferences, child, exams, select-exam, weights
- schedule: book the diagnostic test

Views:
- dashboard, test, syllabus, study-center

Development:
- serve: run the in-memory sandbox backend
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from typing import TypeVar

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from coaching.api.client import ApiClient, ApiError, Found, NotFound, TransientError, lookup
from coaching.api.schemas import (
    ChildProfileForm,
    ExamSelectionRequest,
    ExamType,
    PreferencesForm,
    PreferencesUpdate,
    RegistrationForm,
)
from coaching.config.app_config import load_app_config
from coaching.core.countdown import Countdown, days_until, format_time
from coaching.core.dashboard import (
    DashboardRedirect,
    ParentDashboard,
    StudentDashboard,
    load_parent_dashboard,
    load_student_dashboard,
    resolve_child_id,
)
from coaching.core.onboarding import (
    OnboardingCheckError,
    OnboardingResolver,
    OnboardingStep,
    guard_screen,
)
from coaching.core.scheduling import (
    SchedulingError,
    SchedulingWidget,
    WidgetState,
    check_scheduling_guard,
)
from coaching.core.study_center import UnknownMaterialError, load_study_center
from coaching.core.syllabus import load_syllabus
from coaching.core.weights import SubjectWeightError, equal_subject_weights
from coaching.session.service import SessionError, SessionService, route_login
from coaching.session.store import LocalStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="coach",
    help="Exam Coach: onboarding, scheduling and dashboards for JEE/NEET preparation.",
    no_args_is_help=True,
)

console = Console()

STEP_LABELS = {
    OnboardingStep.PREFERENCES: "Preferences",
    OnboardingStep.CHILD_PROFILE: "Child profile",
    OnboardingStep.EXAM_SELECTION: "Exam selection",
    OnboardingStep.COMPLETE: "Dashboard",
}

STEP_COMMANDS = {
    OnboardingStep.PREFERENCES: "coach preferences",
    OnboardingStep.CHILD_PROFILE: "coach child",
    OnboardingStep.EXAM_SELECTION: "coach select-exam",
    OnboardingStep.COMPLETE: "coach dashboard",
}

# Seconds between test clock ticks
CLOCK_TICK = 1.0

STATUS_STYLES = {
    "mastered": "green",
    "completed": "blue",
    "in-progress": "yellow",
    "not-started": "dim",
}


# =============================================================================
# PLUMBING
# =============================================================================


def _open_session() -> SessionService:
    config = load_app_config()
    return SessionService(LocalStore(config.state_dir)).init()


def _build_client(session: SessionService) -> ApiClient:
    """Client bound to the session's token."""
    return ApiClient(token_provider=session.token_provider)


def _fail(message: str) -> None:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(code=1)


def _print_validation(error: ValidationError) -> None:
    console.print("[red]✗ Please fix the following:[/red]")
    for item in error.errors():
        field = ".".join(str(p) for p in item.get("loc", ())) or "form"
        console.print(f"  [red]- {field}:[/red] {escape(item.get('msg', ''))}")


def _warn_unavailable(error: OnboardingCheckError) -> None:
    console.print(f"[yellow]⚠ {escape(str(error))}[/yellow]")
    console.print("  [dim]The service did not answer; try again in a moment.[/dim]")


def _run(work: Callable[[SessionService, ApiClient], Awaitable[T]]) -> T:
    """Open session + client, run one command body, map errors to exit codes."""
    session = _open_session()

    async def _main() -> T:
        async with _build_client(session) as client:
            return await work(session, client)

    try:
        return asyncio.run(_main())
    except ValidationError as e:
        _print_validation(e)
        raise typer.Exit(code=1)
    except OnboardingCheckError as e:
        _warn_unavailable(e)
        raise typer.Exit(code=1)
    except (ApiError, SessionError, SubjectWeightError, SchedulingError) as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _require_parent(session: SessionService) -> str:
    user = session.require_user()
    if user.role != "parent" or user.is_student:
        raise SessionError("This command is for parent accounts.")
    return user.id


def _redirect(route: str) -> None:
    console.print(f"[cyan]→ Redirecting to {route}[/cyan]")


# =============================================================================
# SESSION COMMANDS
# =============================================================================


@app.command()
def login(
    identifier: str = typer.Argument(..., help="Parent email or student username"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Account password"
    ),
) -> None:
    """Log in as a parent (email) or a student (username)."""

    async def work(session: SessionService, client: ApiClient) -> None:
        user = await session.login(client, identifier, password)
        console.print(f"[green]✓ Welcome, {user.full_name}[/green]")
        console.print(f"  [dim]role:[/dim] {user.role}")

        if user.role == "student":
            _redirect("/dashboard")
            return

        try:
            resolution = await OnboardingResolver(client).resolve(user.id)
        except OnboardingCheckError as e:
            # Logged in, but the next step is unknown; no redirect
            _warn_unavailable(e)
            console.print("  [dim]next:[/dim] coach status")
            return
        _redirect(resolution.route)

    # Validate before hitting the network so errors are shown per field
    try:
        route_login(identifier)
    except ValueError as e:
        _fail(str(e))
    _run(work)


@app.command()
def register(
    name: str = typer.Option(..., "--name", "-n", prompt=True, help="Parent's full name"),
    mobile: str = typer.Option(..., "--mobile", "-m", prompt=True, help="Mobile number"),
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Email address"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True
    ),
    repeat_password: str | None = typer.Option(
        None, "--repeat-password", help="Defaults to --password (already confirmed)"
    ),
) -> None:
    """Create a parent account."""
    try:
        form = RegistrationForm(
            name=name,
            mobile_number=mobile,
            email_address=email,
            password=password,
            repeat_password=repeat_password if repeat_password is not None else password,
        )
    except ValidationError as e:
        _print_validation(e)
        raise typer.Exit(code=1)

    async def work(session: SessionService, client: ApiClient) -> None:
        user = await session.register(client, form)
        console.print(f"[green]✓ Account created for {user.email}[/green]")
        if session.token is None:
            console.print("  [yellow]Automatic login failed; run 'coach login'.[/yellow]")
            return
        _redirect(OnboardingStep.PREFERENCES.route)

    _run(work)


@app.command()
def logout() -> None:
    """Forget the local session."""
    session = _open_session()
    session.logout()
    console.print("[green]✓ Logged out[/green]")


@app.command()
def whoami() -> None:
    """Show the logged-in account."""
    session = _open_session()
    if session.user is None:
        console.print("[yellow]Not logged in[/yellow]")
        raise typer.Exit(code=1)
    user = session.user
    console.print(f"[bold]{user.full_name}[/bold] <{user.email}>")
    console.print(f"  [dim]id:[/dim]   {user.id}")
    console.print(f"  [dim]role:[/dim] {user.role}")


# =============================================================================
# ONBOARDING COMMANDS
# =============================================================================


@app.command()
def status(
    no_aggregate: bool = typer.Option(
        False, "--probe", help="Skip the aggregate status endpoint and probe each step"
    ),
) -> None:
    """Show onboarding progress and the next step."""

    async def work(session: SessionService, client: ApiClient) -> None:
        parent_id = _require_parent(session)
        resolver = OnboardingResolver(client, use_status_endpoint=not no_aggregate)
        resolution = await resolver.resolve(parent_id)

        table = Table(title="Onboarding")
        table.add_column("#", justify="right")
        table.add_column("Step")
        table.add_column("Status")
        for step in OnboardingStep:
            if step is OnboardingStep.COMPLETE:
                continue
            if step.order < resolution.step.order:
                mark = "[green]✓ done[/green]"
            elif step is resolution.step:
                mark = "[yellow]→ next[/yellow]"
            else:
                mark = "[dim]pending[/dim]"
            table.add_row(str(step.order + 1), STEP_LABELS[step], mark)
        console.print(table)

        if resolution.is_complete:
            console.print("[green]✓ Onboarding complete[/green]")
        console.print(f"  [dim]next:[/dim] {STEP_COMMANDS[resolution.step]} ({resolution.route})")
        console.print(f"  [dim]source:[/dim] {resolution.source}")

    _run(work)


@app.command()
def preferences(
    language: str | None = typer.Option(None, "--language", "-l", help="en, hi or mr"),
    email_notifications: bool | None = typer.Option(None, "--email/--no-email"),
    sms_notifications: bool | None = typer.Option(None, "--sms/--no-sms"),
    push_notifications: bool | None = typer.Option(None, "--push/--no-push"),
    involvement: str | None = typer.Option(
        None, "--involvement", "-i", help="Teaching involvement: high, medium or low"
    ),
) -> None:
    """Set parent preferences (creates them on first run, updates afterwards)."""

    async def work(session: SessionService, client: ApiClient) -> None:
        parent_id = _require_parent(session)
        existing = await lookup(client.get_preferences(parent_id))

        if isinstance(existing, TransientError):
            raise OnboardingCheckError("preferences", existing.error)

        if isinstance(existing, Found):
            update = PreferencesUpdate(
                language=language,
                email_notifications=email_notifications,
                sms_notifications=sms_notifications,
                push_notifications=push_notifications,
                teaching_involvement=involvement,
            )
            if not update.model_dump(exclude_none=True):
                console.print("[yellow]⚠ Preferences already saved; pass options to change them.[/yellow]")
                _redirect(OnboardingStep.CHILD_PROFILE.route)
                return
            prefs = await client.update_preferences(parent_id, update)
            console.print("[green]✓ Preferences updated[/green]")
        else:
            form = PreferencesForm(
                language=language,
                email_notifications=True if email_notifications is None else email_notifications,
                sms_notifications=bool(sms_notifications),
                push_notifications=bool(push_notifications),
                teaching_involvement=involvement,
            )
            prefs = await client.create_preferences(parent_id, form)
            console.print("[green]✓ Preferences saved[/green]")
            _redirect(OnboardingStep.CHILD_PROFILE.route)

        console.print(f"  [dim]language:[/dim]    {prefs.language}")
        console.print(f"  [dim]involvement:[/dim] {prefs.teaching_involvement}")
        channels = [
            name
            for name, on in (
                ("email", prefs.email_notifications),
                ("sms", prefs.sms_notifications),
                ("push", prefs.push_notifications),
            )
            if on
        ]
        console.print(f"  [dim]notify via:[/dim]  {', '.join(channels) or 'none'}")

    _run(work)


@app.command()
def child(
    name: str = typer.Option(..., "--name", "-n", prompt=True, help="Child's name"),
    age: int = typer.Option(..., "--age", prompt=True, help="Age (14-19)"),
    grade: int = typer.Option(..., "--grade", prompt=True, help="Grade (9-12)"),
    level: str = typer.Option(
        ..., "--level", prompt=True, help="beginner, intermediate or advanced"
    ),
    username: str = typer.Option(..., "--username", "-u", prompt=True, help="Child's login"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Child's password"
    ),
) -> None:
    """Create the child profile and its login credentials."""
    try:
        form = ChildProfileForm(
            name=name,
            age=age,
            grade=grade,
            current_level=level,
            username=username,
            password=password,
        )
    except ValidationError as e:
        _print_validation(e)
        raise typer.Exit(code=1)

    async def work(session: SessionService, client: ApiClient) -> None:
        parent_id = _require_parent(session)
        resolution = await OnboardingResolver(client).resolve(parent_id)
        redirect = guard_screen(OnboardingStep.CHILD_PROFILE, resolution)
        if redirect is not None:
            if resolution.step is OnboardingStep.PREFERENCES:
                console.print("[yellow]⚠ Set your preferences first.[/yellow]")
            else:
                console.print("[yellow]⚠ A child profile already exists.[/yellow]")
            _redirect(redirect)
            return

        profile = await client.create_child_profile(parent_id, form)
        console.print(f"[green]✓ Profile created for {profile.name}[/green]")
        console.print(f"  [dim]child_id:[/dim] {profile.child_id}")
        console.print(f"  [dim]username:[/dim] {profile.username}")
        _redirect(OnboardingStep.EXAM_SELECTION.route)

    _run(work)


@app.command()
def exams() -> None:
    """List the exams that can be selected."""

    async def work(session: SessionService, client: ApiClient) -> None:
        available = await client.get_available_exams()
        table = Table(title="Available Exams")
        table.add_column("Type")
        table.add_column("Exam")
        table.add_column("Dates")
        table.add_column("Subjects")
        for exam in available:
            limit = 4 if exam.exam_type is ExamType.JEE_COMBO else 2
            dates = [
                f"{d} ({days_until(d)} days left)" for d in exam.available_dates[:limit]
            ]
            extra = len(exam.available_dates) - limit
            if extra > 0:
                dates.append(f"+{extra} more")
            table.add_row(
                exam.exam_type.value,
                exam.exam_name,
                "\n".join(dates),
                ", ".join(exam.subjects),
            )
        console.print(table)

    _run(work)


@app.command(name="select-exam")
def select_exam(
    exam_type: ExamType = typer.Argument(..., help="JEE_MAIN, JEE_ADVANCED, JEE_COMBO or NEET"),
    exam_date: str = typer.Option(..., "--date", "-d", help="One of the exam's dates (YYYY-MM-DD)"),
) -> None:
    """Choose the target exam; subjects start with equal weights."""

    async def work(session: SessionService, client: ApiClient) -> None:
        parent_id = _require_parent(session)
        resolution = await OnboardingResolver(client, use_status_endpoint=False).resolve(parent_id)
        redirect = guard_screen(OnboardingStep.EXAM_SELECTION, resolution)
        if redirect is not None:
            if resolution.is_complete:
                console.print("[yellow]⚠ An exam is already selected; use 'coach weights' to adjust subjects.[/yellow]")
            else:
                console.print(f"[yellow]⚠ Finish '{STEP_LABELS[resolution.step]}' first.[/yellow]")
            _redirect(redirect)
            return

        available = await client.get_available_exams()
        exam = next((e for e in available if e.exam_type == exam_type), None)
        if exam is None:
            raise SessionError(f"{exam_type.value} is not offered")
        if exam_date not in exam.available_dates:
            raise SessionError(
                f"Please select an exam date: {', '.join(exam.available_dates)}"
            )

        if resolution.child is None:
            raise SessionError("No child profile yet; run 'coach child' first.")
        request = ExamSelectionRequest(
            exam_type=exam_type,
            exam_date=exam_date,
            subject_preferences=equal_subject_weights(exam.subjects),
        )
        selection = await client.select_exam(parent_id, resolution.child.child_id, request)
        console.print(f"[green]✓ {exam.exam_name} selected for {selection.exam_date}[/green]")
        console.print(f"  [dim]days until exam:[/dim] {selection.days_until_exam}")
        for subject, weight in selection.subject_preferences.items():
            console.print(f"  [dim]{subject}:[/dim] {weight}%")
        _redirect("/schedule-diagnostic")

    _run(work)


def _parse_weights(pairs: list[str]) -> dict[str, int]:
    weights: dict[str, int] = {}
    for pair in pairs:
        subject, sep, value = pair.partition("=")
        if not sep or not subject.strip():
            raise SubjectWeightError(f"Expected SUBJECT=WEIGHT, got '{pair}'")
        try:
            weights[subject.strip()] = int(value)
        except ValueError:
            raise SubjectWeightError(f"Weight for '{subject.strip()}' must be an integer")
    return weights


@app.command()
def weights(
    assignments: list[str] | None = typer.Option(
        None, "--set", "-s", help="SUBJECT=WEIGHT; all subjects, summing to 100"
    ),
) -> None:
    """Show or update subject weights of the exam selection."""

    async def work(session: SessionService, client: ApiClient) -> None:
        parent_id = _require_parent(session)
        child_id = await resolve_child_id(client, session)
        if child_id is None:
            raise SessionError("No child profile yet; run 'coach child' first.")

        if assignments:
            selection = await client.update_subject_preferences(
                parent_id, child_id, _parse_weights(assignments)
            )
            console.print("[green]✓ Exam preferences updated successfully[/green]")
        else:
            selection = await client.get_exam_selection(child_id)

        table = Table(title=f"{selection.exam_type.value} subject weights")
        table.add_column("Subject")
        table.add_column("Weight", justify="right")
        for subject, weight in selection.subject_preferences.items():
            table.add_row(subject, f"{weight}%")
        console.print(table)

    _run(work)


# =============================================================================
# SCHEDULING
# =============================================================================


def _render_calendar(widget: SchedulingWidget) -> None:
    table = Table(title=widget.month_label)
    for name in ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"):
        table.add_column(name, justify="center")
    for week in widget.grid():
        cells = []
        for day in week:
            if day is None:
                cells.append("")
            elif day.is_selectable:
                cells.append(f"[green]{day.day_number}[/green]")
            else:
                cells.append(f"[dim]{day.day_number}[/dim]")
        table.add_row(*cells)
    console.print(table)
    console.print(f"  [dim]weekdays, starting at:[/dim] {', '.join(widget.slot_times)}")


def _parse_month(value: str) -> tuple[int, int]:
    year_str, sep, month_str = value.partition("-")
    if not sep or not (year_str.isdigit() and month_str.isdigit()):
        raise SchedulingError(f"Expected YYYY-MM, got '{value}'")
    year, month = int(year_str), int(month_str)
    if not 1 <= month <= 12:
        raise SchedulingError(f"Month must be 01-12, got '{value}'")
    return year, month


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise SchedulingError(f"Expected a date as YYYY-MM-DD, got '{value}'")


@app.command()
def schedule(
    month: str | None = typer.Option(None, "--month", help="Month to display (YYYY-MM)"),
    on: str | None = typer.Option(None, "--date", "-d", help="Day to book (YYYY-MM-DD)"),
    at: str | None = typer.Option(None, "--time", "-t", help="Start time (HH:MM)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Book without asking"),
) -> None:
    """Show bookable slots and book the diagnostic test."""
    try:
        shown = _parse_month(month) if month else None
        day = _parse_day(on) if on else None
    except SchedulingError as e:
        _fail(str(e))

    async def work(session: SessionService, client: ApiClient) -> None:
        guard = await check_scheduling_guard(client, session)
        if guard.redirect is not None:
            _redirect(guard.redirect)
            return
        if guard.error is not None:
            raise SchedulingError(guard.error)
        if guard.context is None:
            raise SchedulingError("Nothing to schedule for this account.")

        config = load_app_config()
        widget = SchedulingWidget(
            client, session, guard.context, slot_times=config.scheduling.slot_times
        )
        if shown is not None:
            widget.show_month(*shown)

        if on is None:
            _render_calendar(widget)
            console.print("  [dim]book with:[/dim] coach schedule --date YYYY-MM-DD --time HH:MM")
            return

        if not widget.select_day(day):
            raise SchedulingError(f"{on} has no available slots (weekend or past date)")
        if at is None:
            labels = ", ".join(s.time for s in widget.selected_day.time_slots)
            console.print(f"[cyan]Available times on {on}:[/cyan] {labels}")
            return
        widget.select_time(at)

        when = widget.scheduled_datetime()
        if not yes and not typer.confirm(f"Book the diagnostic test for {when:%A %d %B %Y %H:%M}?"):
            console.print("[yellow]Cancelled[/yellow]")
            return

        route = await widget.confirm()
        if widget.state is WidgetState.ERROR:
            console.print(f"[red]✗ {widget.error}[/red]")
            console.print("  [dim]Run the same command again to retry.[/dim]")
            raise typer.Exit(code=1)

        console.print(f"[green]✓ Diagnostic test scheduled for {when:%d %b %Y %H:%M %Z}[/green]")
        if widget.scheduled is not None:
            console.print(f"  [dim]test_id:[/dim] {widget.scheduled.test_id}")
        _redirect(route)

    _run(work)


async def _run_clock(total_seconds: int, seconds: int) -> None:
    """Tick the test clock for a number of seconds, then stop it."""
    done = asyncio.Event()

    def show(remaining: int) -> None:
        console.print(f"  [cyan]⏱ {format_time(remaining)}[/cyan]")
        if total_seconds - remaining >= seconds:
            done.set()

    countdown = Countdown(total_seconds, on_complete=done.set, tick=CLOCK_TICK, on_tick=show)
    countdown.start()
    try:
        await done.wait()
    finally:
        await countdown.stop()
    console.print(f"  [dim]clock stopped at[/dim] {countdown}")


@app.command()
def test(
    test_id: str | None = typer.Argument(None, help="Test id (defaults to the booked test)"),
    clock: int = typer.Option(0, "--clock", min=0, help="Run the test clock for N seconds"),
) -> None:
    """Show the diagnostic test details."""

    async def work(session: SessionService, client: ApiClient) -> None:
        session.require_user()
        target = test_id
        if target is None:
            cached = session.cached_scheduled_test()
            if not cached:
                raise SessionError("No diagnostic test booked yet; run 'coach schedule'.")
            target = cached["test_id"]

        result = await lookup(client.get_diagnostic_test(target))
        if isinstance(result, NotFound):
            raise SessionError("Failed to load diagnostic test")
        if isinstance(result, TransientError):
            raise result.error

        data = result.data
        hours, minutes = divmod(data.duration_minutes, 60)
        console.print(f"[bold]Diagnostic test {data.test_id}[/bold]")
        console.print(f"  [dim]exam:[/dim]      {data.exam_type}")
        console.print(f"  [dim]status:[/dim]    {data.status}")
        console.print(f"  [dim]scheduled:[/dim] {data.scheduled_date or '-'}")
        console.print(f"  [dim]questions:[/dim] {data.total_questions}")
        console.print(f"  [dim]duration:[/dim]  {hours}h {minutes}m ({format_time(data.duration_minutes * 60)})")

        if clock:
            await _run_clock(data.duration_minutes * 60, clock)

    _run(work)


# =============================================================================
# VIEWS
# =============================================================================


def _print_parent_dashboard(board: ParentDashboard) -> None:
    console.print(f"[bold]Welcome back, {board.user.full_name}[/bold]")
    if board.child is None:
        console.print("[yellow]No child profile yet.[/yellow]")
        _redirect(OnboardingStep.CHILD_PROFILE.route)
        return

    child = board.child
    console.print(f"  [dim]child:[/dim] {child.name} (grade {child.grade}, {child.current_level})")

    if board.exam_selection is None:
        console.print("[yellow]No exam selected yet.[/yellow]")
        _redirect(OnboardingStep.EXAM_SELECTION.route)
        return

    exam = board.exam_selection
    console.print(f"  [dim]exam:[/dim]  {exam.exam_type.value} on {exam.exam_date}")
    console.print(f"  [dim]days until exam:[/dim] {board.days_until_exam}")
    weights = ", ".join(f"{s} {w}%" for s, w in exam.subject_preferences.items())
    console.print(f"  [dim]focus:[/dim] {weights}")

    if board.needs_scheduling:
        console.print("[yellow]⚠ Diagnostic test not scheduled[/yellow]")
        console.print("  [dim]next:[/dim] coach schedule")
        return

    test = board.diagnostic_test
    source = " (cached)" if board.test_source == "cache" else ""
    console.print(
        f"  [dim]diagnostic test:[/dim] {test.status} for {test.scheduled_date}{source}"
    )


def _print_student_dashboard(board: StudentDashboard) -> None:
    console.print(f"[bold]Hi {board.first_name}![/bold]")
    if board.exam_selection is None:
        console.print("[dim]Your parent has not selected an exam yet.[/dim]")
        return
    exam = board.exam_selection
    console.print(f"  [dim]target:[/dim] {exam.exam_type.value} on {exam.exam_date}")
    console.print(f"  [dim]days left:[/dim] {board.days_until_exam}")
    if board.upcoming_test is not None:
        console.print(
            f"  [dim]diagnostic test:[/dim] {board.upcoming_test.scheduled_date} ({board.upcoming_test.status})"
        )


@app.command()
def dashboard() -> None:
    """Show the dashboard for the logged-in account."""

    async def work(session: SessionService, client: ApiClient) -> None:
        session.require_user()
        try:
            board = await load_parent_dashboard(client, session)
            _print_parent_dashboard(board)
        except DashboardRedirect as redirect:
            if redirect.route != "/dashboard":
                raise
            _print_student_dashboard(await load_student_dashboard(client, session))

    try:
        _run(work)
    except DashboardRedirect as e:
        _redirect(e.route)
        raise typer.Exit(code=1)


@app.command()
def syllabus(
    subject: str | None = typer.Option(None, "--subject", "-s", help="Expand one subject's topics"),
) -> None:
    """Track syllabus coverage per subject."""

    async def work(session: SessionService, client: ApiClient) -> None:
        tracker = load_syllabus()
        child_id = await resolve_child_id(client, session)
        if child_id is not None:
            exam = await lookup(client.get_exam_selection(child_id))
            if isinstance(exam, Found) and exam.data.subject_preferences:
                narrowed = tracker.for_subjects(list(exam.data.subject_preferences))
                if narrowed.subjects:
                    tracker = narrowed

        table = Table(title="Syllabus Tracker")
        table.add_column("Subject")
        table.add_column("Progress", justify="right")
        table.add_column("Topics", justify="right")
        table.add_column("Mastered", justify="right")
        table.add_column("In progress", justify="right")
        for s in tracker.subjects:
            table.add_row(
                s.name,
                f"{s.overall_progress}%",
                str(len(s.topics)),
                str(s.count("mastered")),
                str(s.count("in-progress")),
            )
        console.print(table)
        console.print(f"  [dim]overall:[/dim] {tracker.overall_progress}%")

        if subject:
            selected = tracker.subject(subject)
            if selected is None:
                raise SessionError(f"Unknown subject '{subject}'")
            topics = Table(title=selected.name)
            topics.add_column("Topic")
            topics.add_column("Weight", justify="right")
            topics.add_column("Confidence", justify="right")
            topics.add_column("Accuracy", justify="right")
            topics.add_column("Status")
            for t in selected.topics:
                style = STATUS_STYLES.get(t.status, "")
                topics.add_row(
                    t.name,
                    f"{t.weightage}%",
                    f"{t.confidence}%",
                    f"{t.accuracy}%",
                    f"[{style}]{t.status}[/{style}]",
                )
            console.print(topics)

    try:
        _run(work)
    except DashboardRedirect as e:
        _redirect(e.route)
        raise typer.Exit(code=1)


@app.command(name="study-center")
def study_center(
    search: str = typer.Option("", "--search", "-q", help="Match in title"),
    subject: str = typer.Option("all", "--subject", "-s"),
    difficulty: str = typer.Option("all", "--difficulty", "-d", help="easy, medium, hard"),
    tab: str = typer.Option(
        "all", "--tab", "-t", help="all, mindmap, summary, practice, video, audio, bookmarked, completed"
    ),
    bookmark: str | None = typer.Option(
        None, "--bookmark", "-b", help="Toggle the bookmark on a material id"
    ),
) -> None:
    """Browse study materials."""
    session = _open_session()
    if session.user is None:
        _redirect("/auth")
        raise typer.Exit(code=1)

    center = load_study_center()
    center.apply_bookmarks(session.bookmarks())

    if bookmark is not None:
        try:
            state = center.toggle_bookmark(bookmark)
        except UnknownMaterialError:
            _fail(f"Unknown material '{bookmark}'")
        session.save_bookmark(bookmark, state)
        title = center.get(bookmark).title
        verb = "Bookmarked" if state else "Removed bookmark from"
        console.print(f"[green]✓ {verb} {escape(title)}[/green]")

    try:
        materials = center.filter(query=search, subject=subject, difficulty=difficulty, tab=tab)
    except ValueError as e:
        _fail(str(e))

    stats = center.stats()
    console.print(
        f"[bold]Study Center[/bold]  {stats.completed}/{stats.total} completed · "
        f"{stats.in_progress} in progress · {stats.bookmarked} bookmarked · "
        f"★ {stats.average_rating}"
    )

    table = Table()
    table.add_column("Id")
    table.add_column("Title")
    table.add_column("Subject")
    table.add_column("Type")
    table.add_column("Difficulty")
    table.add_column("Duration", justify="right")
    table.add_column("Progress", justify="right")
    for m in materials:
        mark = "★ " if m.bookmarked else ""
        table.add_row(
            m.id,
            f"{mark}{m.title}",
            m.subject,
            m.type,
            m.difficulty,
            m.duration,
            "✓" if m.completed else f"{m.progress}%",
        )
    console.print(table)
    if not materials:
        console.print("[dim]No materials match these filters.[/dim]")


# =============================================================================
# DEVELOPMENT
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
) -> None:
    """Run the in-memory sandbox backend."""
    import uvicorn

    from coaching.web.api import create_app

    console.print(f"[green]Sandbox backend on http://{host}:{port}[/green]")
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    app()
