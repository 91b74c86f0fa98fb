"""Auth endpoints (F5)."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError

from coaching.api.schemas import RegistrationForm, RegistrationResponse
from coaching.web.deps import get_store, to_http
from coaching.web.store import SandboxError, SandboxStore

router = APIRouter(prefix="/api/auth", tags=["auth"])


class EmailLogin(BaseModel):
    email: str
    password: str


class StudentLogin(BaseModel):
    username: str
    password: str


@router.post("/login/email")
async def login_email(
    credentials: EmailLogin, store: SandboxStore = Depends(get_store)
) -> dict[str, Any]:
    """Parent login."""
    try:
        return store.login_parent(credentials.email, credentials.password)
    except SandboxError as e:
        raise to_http(e)


@router.post("/login/student")
async def login_student(
    credentials: StudentLogin, store: SandboxStore = Depends(get_store)
) -> dict[str, Any]:
    """Student login with the credentials set up by the parent."""
    try:
        return store.login_student(credentials.username, credentials.password)
    except SandboxError as e:
        raise to_http(e)


@router.post("/register/simple", response_model=RegistrationResponse)
async def register_simple(
    name: str = Query(...),
    mobile_number: str = Query(...),
    email_address: str = Query(...),
    password: str = Query(...),
    repeat_password: str = Query(...),
    store: SandboxStore = Depends(get_store),
) -> RegistrationResponse:
    """Register a parent from query parameters."""
    try:
        form = RegistrationForm(
            name=name,
            mobile_number=mobile_number,
            email_address=email_address,
            password=password,
            repeat_password=repeat_password,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )

    try:
        account = store.register_parent(
            form.name, form.email_address, form.mobile_number, form.password
        )
    except SandboxError as e:
        raise to_http(e)

    return RegistrationResponse(
        parent_id=account.parent_id,
        email=account.email,
        phone=account.phone,
        message="Registration successful",
    )
