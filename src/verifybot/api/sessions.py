"""Read-only view of live verification sessions."""

from fastapi import APIRouter, Request

from verifybot.core.errors import NotFoundError
from verifybot.models.schemas import SessionRead
from verifybot.verification.manager import SessionManager

router = APIRouter(prefix="/sessions", tags=["sessions"])


def get_manager(request: Request) -> SessionManager:
    return request.app.state.manager


@router.get("", response_model=list[SessionRead])
async def list_sessions(request: Request):
    """List live sessions, soonest deadline first. Never includes codes or messages."""
    snapshots = [session.snapshot() for session in get_manager(request).live_sessions()]
    return sorted(
        snapshots,
        key=lambda s: s.seconds_remaining if s.seconds_remaining is not None else float("inf"),
    )


@router.get("/{guild_id}/{user_id}", response_model=SessionRead)
async def get_session(guild_id: int, user_id: int, request: Request):
    """Get the live session for a user in a guild."""
    session = get_manager(request).get(user_id, guild_id)
    if session is None:
        raise NotFoundError("VerificationSession", f"{guild_id}/{user_id}")
    return session.snapshot()
