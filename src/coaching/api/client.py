"""Async REST client for the coaching backend.

Thin wrapper over httpx that attaches the session's bearer token,
maps HTTP failures onto a small error hierarchy and parses responses
into the pydantic models of coaching.api.schemas.

Endpoint groups:
- auth: login (email / student username), simple registration
- onboarding: preferences, child profile, aggregate status
- exams: available exams, exam selection, subject preferences
- diagnostic tests: fetch, schedule, list per student
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from coaching.api.schemas import (
    AvailableExam,
    ChildProfile,
    ChildProfileForm,
    ChildProfileUpdate,
    DiagnosticTest,
    ExamSelection,
    ExamSelectionRequest,
    OnboardingStatus,
    Preferences,
    PreferencesForm,
    PreferencesUpdate,
    RegistrationForm,
    RegistrationResponse,
    ScheduleRequest,
)
from coaching.config.app_config import load_app_config
from coaching.core.weights import validate_subject_weights

logger = structlog.get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

TokenProvider = Callable[[], Union[str, None]]


# =============================================================================
# ERRORS
# =============================================================================


class ApiError(Exception):
    """Error during a backend interaction."""

    pass


class ApiConnectionError(ApiError):
    """Backend unreachable or request timed out."""

    pass


class ApiResponseError(ApiError):
    """Backend answered with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: int = 0, detail: str = ""):
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class ApiNotFoundError(ApiResponseError):
    """Requested resource does not exist (HTTP 404)."""

    pass


# =============================================================================
# LOOKUP RESULTS
# =============================================================================


@dataclass(frozen=True)
class Found(Generic[T]):
    """Resource exists."""

    data: T


@dataclass(frozen=True)
class NotFound:
    """Resource does not exist yet."""

    detail: str = ""


@dataclass(frozen=True)
class TransientError:
    """Lookup could not be answered (network failure, timeout or 5xx)."""

    error: ApiError


LookupResult = Union[Found[T], NotFound, TransientError]


async def lookup(request: Awaitable[T]) -> LookupResult[T]:
    """Run an existence check, keeping "missing" apart from "failed".

    Client errors other than 404 are not lookups gone wrong but bad
    requests, so they propagate.
    """
    try:
        return Found(await request)
    except ApiNotFoundError as e:
        return NotFound(e.detail)
    except ApiConnectionError as e:
        return TransientError(e)
    except ApiResponseError as e:
        if e.is_server_error:
            return TransientError(e)
        raise


# =============================================================================
# API CLIENT
# =============================================================================


def _extract_detail(response: httpx.Response) -> str:
    """Pull the backend's error detail out of a response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if detail is not None:
            return detail if isinstance(detail, str) else str(detail)
    return str(body)


def _parse(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ApiResponseError(f"Unexpected {model.__name__} payload: {e}") from e


class ApiClient:
    """Client for the coaching REST API.

    Requests carry `Authorization: Bearer <token>` whenever the token
    provider returns a token. No retry or backoff is applied: a failed
    call surfaces to the caller immediately.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize API client.

        Args:
            base_url: Backend URL (defaults to the configured one)
            timeout: Per-request timeout in seconds
            token_provider: Callable returning the current bearer token
            transport: Custom httpx transport (tests mount the sandbox app here)
        """
        if base_url is None or timeout is None:
            config = load_app_config()
            base_url = base_url or config.api.base_url
            timeout = timeout if timeout is not None else config.api.timeout

        self.base_url = base_url
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            ApiConnectionError: If the backend cannot be reached
            ApiNotFoundError: On HTTP 404
            ApiResponseError: On any other error status or a non-JSON body
        """
        start_time = time.time()
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=self._auth_headers(),
            )
        except httpx.TransportError as e:
            logger.warning("api_unreachable", method=method, path=path, error=str(e))
            raise ApiConnectionError(
                f"Could not reach {self.base_url}{path}: {e}"
            ) from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            "api_request",
            method=method,
            path=path,
            status=response.status_code,
            latency_ms=latency_ms,
        )

        if response.status_code >= 400:
            detail = _extract_detail(response)
            logger.info(
                "api_error",
                method=method,
                path=path,
                status=response.status_code,
                detail=detail,
            )
            error_cls = ApiNotFoundError if response.status_code == 404 else ApiResponseError
            raise error_cls(
                f"{method} {path} failed with {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiResponseError(
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
            ) from e

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def login_email(self, email: str, password: str) -> dict[str, Any]:
        """Parent login. Returns the raw payload (token, parent_id, email...)."""
        return await self._request(
            "POST", "/api/auth/login/email", json={"email": email, "password": password}
        )

    async def login_student(self, username: str, password: str) -> dict[str, Any]:
        """Student login with the credentials created by the parent."""
        return await self._request(
            "POST",
            "/api/auth/login/student",
            json={"username": username, "password": password},
        )

    async def register(self, form: RegistrationForm) -> RegistrationResponse:
        """Simple registration; the payload travels as query parameters."""
        data = await self._request(
            "POST", "/api/auth/register/simple", params=form.model_dump()
        )
        return _parse(RegistrationResponse, data or {})

    # -------------------------------------------------------------------------
    # Onboarding
    # -------------------------------------------------------------------------

    async def get_preferences(self, parent_id: str) -> Preferences:
        data = await self._request(
            "GET", "/api/onboarding/preferences", params={"parent_id": parent_id}
        )
        return _parse(Preferences, data)

    async def create_preferences(self, parent_id: str, form: PreferencesForm) -> Preferences:
        data = await self._request(
            "POST",
            "/api/onboarding/preferences",
            params={"parent_id": parent_id},
            json=form.model_dump(),
        )
        return _parse(Preferences, data)

    async def update_preferences(
        self, parent_id: str, update: PreferencesUpdate
    ) -> Preferences:
        data = await self._request(
            "PUT",
            "/api/onboarding/preferences",
            params={"parent_id": parent_id},
            json=update.model_dump(exclude_none=True),
        )
        return _parse(Preferences, data)

    async def get_child_profile(self, parent_id: str) -> ChildProfile:
        data = await self._request(
            "GET", "/api/onboarding/child", params={"parent_id": parent_id}
        )
        return _parse(ChildProfile, data)

    async def create_child_profile(
        self, parent_id: str, form: ChildProfileForm
    ) -> ChildProfile:
        data = await self._request(
            "POST",
            "/api/onboarding/child",
            params={"parent_id": parent_id},
            json=form.model_dump(),
        )
        return _parse(ChildProfile, data)

    async def update_child_profile(
        self, parent_id: str, child_id: str, update: ChildProfileUpdate
    ) -> ChildProfile:
        data = await self._request(
            "PUT",
            f"/api/onboarding/child/{child_id}",
            params={"parent_id": parent_id},
            json=update.model_dump(exclude_none=True),
        )
        return _parse(ChildProfile, data)

    async def get_onboarding_status(self, parent_id: str) -> OnboardingStatus:
        data = await self._request(
            "GET", "/api/onboarding/status", params={"parent_id": parent_id}
        )
        return _parse(OnboardingStatus, data)

    # -------------------------------------------------------------------------
    # Exams
    # -------------------------------------------------------------------------

    async def get_available_exams(self) -> list[AvailableExam]:
        data = await self._request("GET", "/api/onboarding/exams/available")
        exams = data.get("exams", []) if isinstance(data, dict) else data
        return [_parse(AvailableExam, exam) for exam in exams or []]

    async def select_exam(
        self, parent_id: str, child_id: str, request: ExamSelectionRequest
    ) -> ExamSelection:
        data = await self._request(
            "POST",
            "/api/onboarding/exam/select",
            params={"parent_id": parent_id, "child_id": child_id},
            json=request.model_dump(mode="json"),
        )
        return _parse(ExamSelection, data)

    async def get_exam_selection(self, child_id: str) -> ExamSelection:
        data = await self._request(
            "GET", "/api/onboarding/exam/preferences", params={"child_id": child_id}
        )
        return _parse(ExamSelection, data)

    async def update_subject_preferences(
        self, parent_id: str, child_id: str, preferences: dict[str, int]
    ) -> ExamSelection:
        """Replace subject weights; exam type and date stay as selected."""
        weights = validate_subject_weights(preferences)
        data = await self._request(
            "PUT",
            "/api/onboarding/exam/preferences",
            params={"parent_id": parent_id, "child_id": child_id},
            json=weights,
        )
        return _parse(ExamSelection, data)

    # -------------------------------------------------------------------------
    # Diagnostic tests
    # -------------------------------------------------------------------------

    async def get_diagnostic_test(self, test_id: str) -> DiagnosticTest:
        data = await self._request("GET", f"/api/diagnostic-test/{test_id}")
        return _parse(DiagnosticTest, data)

    async def schedule_diagnostic_test(self, request: ScheduleRequest) -> DiagnosticTest:
        data = await self._request(
            "POST", "/api/diagnostic-test/schedule", json=request.model_dump()
        )
        payload = {**request.model_dump(), "student_id": request.child_id}
        if isinstance(data, dict):
            payload.update({k: v for k, v in data.items() if v is not None})
        return _parse(DiagnosticTest, payload)

    async def get_scheduled_tests(self, child_id: str) -> list[DiagnosticTest]:
        data = await self._request("GET", f"/api/diagnostic-test/student/{child_id}")
        return [_parse(DiagnosticTest, item) for item in data or []]
