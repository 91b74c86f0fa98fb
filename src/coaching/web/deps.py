"""Shared FastAPI dependencies for the sandbox routes (F5)."""

from fastapi import Header, HTTPException, Request, status

from coaching.web.store import AuthError, SandboxError, SandboxStore


def get_store(request: Request) -> SandboxStore:
    """Store attached to the running app."""
    return request.app.state.store


Principal = tuple[str, str]


def require_auth(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Principal:
    """Resolve the bearer token into (role, subject_id) or answer 401."""
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    try:
        return get_store(request).authenticate(token)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.detail)


def to_http(error: SandboxError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)
