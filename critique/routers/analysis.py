from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from critique.dependencies import get_pipeline
from critique.schemas.stages import StartRequest
from critique.utils.response import stage_error, stage_success

router = APIRouter(prefix="/analysis", tags=["analysis"])

_STATUS_CODES = {
    "completed": 200,
    "invalid": 400,
    "not_found": 404,
    "already_started": 409,
    "failed": 500,
}


@router.post("/start")
async def start_analysis(payload: StartRequest, pipeline=Depends(get_pipeline)):
    """Run the whole pipeline for a draft session and report how it ended."""
    outcome = await pipeline.start(payload.session_id)

    if outcome.success:
        return stage_success(sessionId=outcome.session_id, message=outcome.message, resultId=outcome.result_id)

    return JSONResponse(
        status_code=_STATUS_CODES.get(outcome.code, 500),
        content=stage_error(
            outcome.error or outcome.message,
            outcome.stage,
            sessionId=outcome.session_id,
            status=outcome.status,
        ),
    )
