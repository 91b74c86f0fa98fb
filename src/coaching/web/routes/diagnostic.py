"""Diagnostic test endpoints (F5)."""

from fastapi import APIRouter, Depends, status

from coaching.api.schemas import DiagnosticTest, ScheduleRequest
from coaching.web.deps import Principal, get_store, require_auth, to_http
from coaching.web.store import SandboxError, SandboxStore

router = APIRouter(
    prefix="/api/diagnostic-test",
    tags=["diagnostic-test"],
    dependencies=[Depends(require_auth)],
)


@router.post("/schedule", response_model=DiagnosticTest, status_code=status.HTTP_201_CREATED)
async def schedule_test(
    request: ScheduleRequest,
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> DiagnosticTest:
    """Book a diagnostic test; test ids and active bookings are unique."""
    try:
        store.authorize(principal, child_id=request.child_id)
        return store.schedule_test(request)
    except SandboxError as e:
        raise to_http(e)


@router.get("/student/{child_id}", response_model=list[DiagnosticTest])
async def tests_for_student(
    child_id: str,
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> list[DiagnosticTest]:
    try:
        store.authorize(principal, child_id=child_id)
    except SandboxError as e:
        raise to_http(e)
    return store.tests_for(child_id)


@router.get("/{test_id}", response_model=DiagnosticTest)
async def get_test(
    test_id: str,
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> DiagnosticTest:
    try:
        test = store.get_test(test_id)
        store.authorize(principal, child_id=test.student_id)
        return test
    except SandboxError as e:
        raise to_http(e)
