"""Sandbox liveness endpoint (F5)."""

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter, Depends

from coaching.api.schemas import HealthResponse
from coaching.web.deps import get_store
from coaching.web.store import SandboxStore

router = APIRouter(tags=["health"])


def _package_version() -> str:
    try:
        return version("exam-coach")
    except PackageNotFoundError:
        return "0.0.0+local"


@router.get("/health", response_model=HealthResponse)
async def health_check(store: SandboxStore = Depends(get_store)) -> HealthResponse:
    """Report liveness and how much the sandbox currently holds."""
    return HealthResponse(
        status="ok",
        version=_package_version(),
        timestamp=datetime.now(timezone.utc).isoformat(),
        records={
            "parents": len(store.parents),
            "children": len(store.children),
            "tests": len(store.tests),
        },
    )
