"""Onboarding and exam-selection endpoints (F5)."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from coaching.api.schemas import (
    ChildProfile,
    ChildProfileForm,
    ChildProfileUpdate,
    ExamSelection,
    ExamSelectionRequest,
    OnboardingStatus,
    Preferences,
    PreferencesForm,
    PreferencesUpdate,
)
from coaching.core.weights import SubjectWeightError, validate_subject_weights
from coaching.web.deps import Principal, get_store, require_auth, to_http
from coaching.web.store import SandboxError, SandboxStore

router = APIRouter(
    prefix="/api/onboarding",
    tags=["onboarding"],
    dependencies=[Depends(require_auth)],
)


# =============================================================================
# PREFERENCES
# =============================================================================


@router.get("/preferences", response_model=Preferences)
async def get_preferences(
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> Preferences:
    try:
        store.authorize(principal, parent_id=parent_id)
        return store.get_preferences(parent_id)
    except SandboxError as e:
        raise to_http(e)


@router.post("/preferences", response_model=Preferences, status_code=status.HTTP_201_CREATED)
async def create_preferences(
    form: PreferencesForm,
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> Preferences:
    try:
        store.authorize(principal, parent_id=parent_id)
        return store.create_preferences(parent_id, form)
    except SandboxError as e:
        raise to_http(e)


@router.put("/preferences", response_model=Preferences)
async def update_preferences(
    update: PreferencesUpdate,
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> Preferences:
    try:
        store.authorize(principal, parent_id=parent_id)
        return store.update_preferences(parent_id, update.model_dump(exclude_none=True))
    except SandboxError as e:
        raise to_http(e)


# =============================================================================
# CHILD PROFILE
# =============================================================================


@router.get("/child", response_model=ChildProfile)
async def get_child(
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> ChildProfile:
    try:
        store.authorize(principal, parent_id=parent_id)
        return store.get_child(parent_id)
    except SandboxError as e:
        raise to_http(e)


@router.post("/child", response_model=ChildProfile, status_code=status.HTTP_201_CREATED)
async def create_child(
    form: ChildProfileForm,
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> ChildProfile:
    try:
        store.authorize(principal, parent_id=parent_id)
        return store.create_child(parent_id, form)
    except SandboxError as e:
        raise to_http(e)


@router.put("/child/{child_id}", response_model=ChildProfile)
async def update_child(
    child_id: str,
    update: ChildProfileUpdate,
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> ChildProfile:
    try:
        store.authorize(principal, parent_id=parent_id, child_id=child_id)
        return store.update_child(parent_id, child_id, update.model_dump(exclude_none=True))
    except SandboxError as e:
        raise to_http(e)


@router.get("/status", response_model=OnboardingStatus)
async def onboarding_status(
    parent_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> OnboardingStatus:
    try:
        store.authorize(principal, parent_id=parent_id)
    except SandboxError as e:
        raise to_http(e)
    return store.status(parent_id)


# =============================================================================
# EXAMS
# =============================================================================


@router.get("/exams/available")
async def available_exams(store: SandboxStore = Depends(get_store)) -> dict[str, Any]:
    exams = store.available_exams()
    return {"exams": [e.model_dump(mode="json") for e in exams]}


@router.post("/exam/select", response_model=ExamSelection, status_code=status.HTTP_201_CREATED)
async def select_exam(
    request: ExamSelectionRequest,
    parent_id: str = Query(...),
    child_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> ExamSelection:
    try:
        store.authorize(principal, parent_id=parent_id, child_id=child_id)
        return store.select_exam(parent_id, child_id, request)
    except SandboxError as e:
        raise to_http(e)


@router.get("/exam/preferences", response_model=ExamSelection)
async def get_exam_selection(
    child_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> ExamSelection:
    try:
        store.authorize(principal, child_id=child_id)
        return store.get_exam_selection(child_id)
    except SandboxError as e:
        raise to_http(e)


@router.put("/exam/preferences", response_model=ExamSelection)
async def update_subject_preferences(
    weights: dict[str, int] = Body(...),
    parent_id: str = Query(...),
    child_id: str = Query(...),
    store: SandboxStore = Depends(get_store),
    principal: Principal = Depends(require_auth),
) -> ExamSelection:
    """Replace subject weights; exam type and date are immutable."""
    try:
        store.authorize(principal, parent_id=parent_id, child_id=child_id)
    except SandboxError as e:
        raise to_http(e)

    try:
        validate_subject_weights(weights)
    except SubjectWeightError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        return store.update_subject_preferences(parent_id, child_id, weights)
    except SandboxError as e:
        raise to_http(e)
