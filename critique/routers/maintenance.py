from fastapi import APIRouter

from critique.config import settings
from critique.services.pipeline import recover_stalled_sessions
from critique.utils.response import success_response

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/stalled-sessions")
async def fail_stalled_sessions(older_than_minutes: int | None = None):
    minutes = settings.stalled_session_minutes if older_than_minutes is None else older_than_minutes
    session_ids = await recover_stalled_sessions(minutes)
    return success_response(
        data={"failed_sessions": session_ids, "older_than_minutes": minutes},
        message=f"{len(session_ids)} stalled session(s) marked as failed",
    )
