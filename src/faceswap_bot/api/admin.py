"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from faceswap_bot.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check with in-flight counts."""
    container: AppContainer = request.app.state.container
    orchestrator = container.orchestrator
    return {
        "status": "ok",
        "active_sessions": len(orchestrator.store.active_sessions()),
        "open_upload_windows": orchestrator.collector.pending_count(),
    }


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request) -> dict[str, object]:
    """Return live sessions with their state."""
    container: AppContainer = request.app.state.container
    return {"sessions": container.orchestrator.describe_sessions()}


@router.get("/sessions/{session_id}", dependencies=[Depends(require_admin)])
async def session_detail(session_id: str, request: Request) -> dict[str, object]:
    """Return the live or final state of one session."""
    container: AppContainer = request.app.state.container
    state = container.orchestrator.session_state(session_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return {
        "id": session_id,
        "state": state.value,
        "terminal": state.is_terminal,
    }


@router.post("/rate-limits/{user_id}/clear", dependencies=[Depends(require_admin)])
async def clear_rate_limits(user_id: int, request: Request) -> dict[str, object]:
    """Reset a user's rate limit windows."""
    container: AppContainer = request.app.state.container
    container.rate_limiter.clear(user_id)
    return {"status": "ok", "user_id": user_id}
