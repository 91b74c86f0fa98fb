"""Session service (F1).

Holds the authenticated identity and its bearer token. The service is an
explicit object handed to whatever needs it; its lifecycle is:

    session = SessionService(LocalStore(state_dir))
    session.init()          # app start: restore token + user
    ...
    session.teardown()      # logout: forget everything locally

Logout never calls the backend; tokens are not revoked server-side.
"""

from __future__ import annotations

from typing import Any, Literal

import structlog

from coaching.api.client import ApiClient, ApiError
from coaching.api.schemas import RegistrationForm, User
from coaching.session.store import (
    BOOKMARKS_KEY,
    SCHEDULED_TEST_KEY,
    TOKEN_KEY,
    USER_KEY,
    LocalStore,
)

logger = structlog.get_logger(__name__)

LoginRoute = Literal["parent", "student"]


class SessionError(Exception):
    """Error in session handling."""

    pass


class RegistrationError(SessionError):
    """Backend rejected the registration."""

    pass


def route_login(identifier: str) -> LoginRoute:
    """Pick the login flow for an identifier.

    Parents sign in with an email address; students with the username
    their parent created, which never needs an "@".

    Raises:
        ValueError: If the identifier is empty.
    """
    if not identifier:
        raise ValueError("Identifier must not be empty")
    return "parent" if "@" in identifier else "student"


def normalize_login(payload: dict[str, Any], route: LoginRoute) -> User:
    """Turn a login response into the local User record.

    Student detection order: explicit student route, then the backend's
    is_student flag, then a student/child id without a parent id.
    """
    parent_id = payload.get("parent_id")
    student_id = payload.get("student_id") or payload.get("child_id")
    email = payload.get("email")
    username = payload.get("username")
    name = payload.get("name")

    is_student = (
        route == "student"
        or payload.get("is_student") is True
        or (bool(student_id) and not parent_id)
    )

    user_id = student_id if is_student else parent_id
    if not user_id:
        raise SessionError("Login response did not include a user id")

    full_name = name or username or (email.split("@")[0] if email else None) or "User"

    return User(
        id=str(user_id),
        email=email or f"{username}@student.local",
        full_name=full_name,
        role="student" if is_student else "parent",
        is_student=is_student,
    )


class SessionService:
    """Authenticated session persisted to a LocalStore."""

    def __init__(self, store: LocalStore):
        self.store = store
        self.user: User | None = None
        self.token: str | None = None
        self.initialized = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self) -> SessionService:
        """Restore a previous session; both token and user must be stored."""
        token = self.store.get(TOKEN_KEY)
        user_data = self.store.get(USER_KEY)

        if token and user_data:
            try:
                self.user = User.model_validate(user_data)
                self.token = token
                logger.info("session_restored", user_id=self.user.id, role=self.user.role)
            except ValueError:
                logger.warning("session_user_invalid")
                self.user = None
                self.token = None

        self.initialized = True
        return self

    def teardown(self) -> None:
        """Forget the session locally, cached test and bookmarks included."""
        user_id = self.user.id if self.user else None
        self.user = None
        self.token = None
        self.store.remove(TOKEN_KEY)
        self.store.remove(USER_KEY)
        self.store.remove(SCHEDULED_TEST_KEY)
        self.store.remove(BOOKMARKS_KEY)
        logger.info("session_cleared", user_id=user_id)

    def token_provider(self) -> str | None:
        """Bearer token for ApiClient."""
        return self.token

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def require_user(self) -> User:
        if self.user is None:
            raise SessionError("Not logged in. Run 'coach login' first.")
        return self.user

    # -------------------------------------------------------------------------
    # Auth flows
    # -------------------------------------------------------------------------

    async def login(self, client: ApiClient, identifier: str, password: str) -> User:
        """Log in through the parent or student endpoint and persist the result."""
        route = route_login(identifier)
        if route == "student":
            payload = await client.login_student(identifier, password)
        else:
            payload = await client.login_email(identifier, password)

        payload = payload or {}
        user = normalize_login(payload, route)
        token = payload.get("token")

        self.user = user
        self.token = token
        self.store.set(USER_KEY, user.model_dump())
        if token:
            self.store.set(TOKEN_KEY, token)

        logger.info("login_succeeded", user_id=user.id, role=user.role, route=route)
        return user

    async def register(self, client: ApiClient, form: RegistrationForm) -> User:
        """Register a parent, then try an automatic login to obtain a token."""
        response = await client.register(form)
        if not response.parent_id:
            raise RegistrationError(response.message or "Registration failed")

        user = User(
            id=response.parent_id,
            email=response.email or form.email_address,
            full_name=form.name,
            role="parent",
        )
        self.user = user
        self.store.set(USER_KEY, user.model_dump())

        try:
            payload = await client.login_email(form.email_address, form.password)
        except ApiError as e:
            logger.warning("auto_login_failed", parent_id=user.id, error=str(e))
            return user

        token = (payload or {}).get("token")
        if token:
            self.token = token
            self.store.set(TOKEN_KEY, token)
        return user

    def logout(self) -> None:
        self.teardown()

    # -------------------------------------------------------------------------
    # Scheduled test cache
    # -------------------------------------------------------------------------

    def cache_scheduled_test(self, data: dict[str, Any]) -> None:
        self.store.set(SCHEDULED_TEST_KEY, data)

    def cached_scheduled_test(self) -> dict[str, Any] | None:
        data = self.store.get(SCHEDULED_TEST_KEY)
        return data if isinstance(data, dict) else None

    # -------------------------------------------------------------------------
    # Study material bookmarks
    # -------------------------------------------------------------------------

    def bookmarks(self) -> dict[str, bool]:
        """Bookmark states set by the user, keyed by material id."""
        data = self.store.get(BOOKMARKS_KEY)
        if not isinstance(data, dict):
            return {}
        return {str(k): bool(v) for k, v in data.items()}

    def save_bookmark(self, material_id: str, bookmarked: bool) -> None:
        data = self.bookmarks()
        data[material_id] = bookmarked
        self.store.set(BOOKMARKS_KEY, data)
