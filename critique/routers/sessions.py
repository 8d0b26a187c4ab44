import json
import uuid as uuid_mod

from fastapi import APIRouter, HTTPException
from sqlalchemy import func, select

from critique.database import async_session
from critique.models.analysis import AnalysisResult
from critique.models.image import Image
from critique.models.session import Session, utcnow_iso
from critique.models.status import SessionStatus
from critique.schemas.session import ImageCreate, ImageResponse, SessionCreate, SessionResponse
from critique.utils.response import success_response

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def latest_result(db_session, session_id: str) -> AnalysisResult | None:
    result = await db_session.execute(
        select(AnalysisResult)
        .where(AnalysisResult.session_id == session_id)
        .order_by(AnalysisResult.created_at.desc())
        .limit(1)
    )
    return result.scalars().first()


def _result_data(analysis: AnalysisResult) -> dict:
    return {
        "id": analysis.id,
        "persona_feedback": json.loads(analysis.persona_feedback),
        "summary": analysis.synthesis_summary,
        "priority_matrix": json.loads(analysis.priority_matrix),
        "annotations": json.loads(analysis.annotations),
        "metadata": json.loads(analysis.model_metadata),
        "processing_time_ms": analysis.processing_time_ms,
        "persona_score": analysis.persona_score,
        "degraded": bool(analysis.degraded),
        "created_at": analysis.created_at,
    }


async def _get_session_or_404(db_session, session_id: str) -> Session:
    sess = await db_session.get(Session, session_id)
    if not sess:
        raise HTTPException(status_code=404, detail="Session not found")
    return sess


@router.post("", status_code=201)
async def create_session(payload: SessionCreate):
    async with async_session() as db_session:
        session_id = payload.id or str(uuid_mod.uuid4())

        # Idempotent create
        existing = await db_session.get(Session, session_id)
        if existing:
            return success_response(data=SessionResponse.model_validate(existing).model_dump())

        now = utcnow_iso()
        new_session = Session(
            id=session_id,
            owner=payload.owner,
            persona=payload.persona.value,
            mode=payload.mode.value,
            intent=payload.intent,
            goal_confidence=payload.goal_confidence,
            status=SessionStatus.DRAFT.value,
            archived=0,
            created_at=now,
            updated_at=now,
        )
        db_session.add(new_session)
        await db_session.commit()
        await db_session.refresh(new_session)

        data = SessionResponse.model_validate(new_session).model_dump()
    return success_response(data=data)


@router.get("")
async def list_sessions(owner: str | None = None, include_archived: bool = False):
    async with async_session() as db_session:
        query = select(Session).order_by(Session.created_at.desc())
        if owner is not None:
            query = query.where(Session.owner == owner)
        if not include_archived:
            query = query.where(Session.archived == 0)
        result = await db_session.execute(query)
        sessions = result.scalars().all()

        counts = dict((await db_session.execute(
            select(Image.session_id, func.count(Image.id)).group_by(Image.session_id)
        )).all())

        data = []
        for s in sessions:
            session_data = SessionResponse.model_validate(s).model_dump()
            session_data["image_count"] = counts.get(s.id, 0)
            data.append(session_data)

    return success_response(data=data)


@router.get("/{session_id}")
async def get_session(session_id: str):
    async with async_session() as db_session:
        sess = await _get_session_or_404(db_session, session_id)

        result = await db_session.execute(
            select(Image).where(Image.session_id == session_id).order_by(Image.upload_order)
        )
        images = result.scalars().all()
        analysis = await latest_result(db_session, session_id)

        return success_response(data={
            "session": SessionResponse.model_validate(sess).model_dump(),
            "images": [ImageResponse.model_validate(i).model_dump() for i in images],
            "has_result": analysis is not None,
        })


@router.post("/{session_id}/images", status_code=201)
async def add_image(session_id: str, payload: ImageCreate):
    async with async_session() as db_session:
        sess = await _get_session_or_404(db_session, session_id)
        if sess.status != SessionStatus.DRAFT.value:
            raise HTTPException(status_code=409, detail=f"Cannot add images to a {sess.status} session")

        result = await db_session.execute(
            select(Image.upload_order).where(Image.session_id == session_id)
        )
        taken = set(result.scalars().all())

        upload_order = payload.upload_order
        if upload_order is None:
            upload_order = max(taken) + 1 if taken else 0
        elif upload_order in taken:
            raise HTTPException(status_code=409, detail=f"Upload order {upload_order} already used")

        image = Image(
            id=str(uuid_mod.uuid4()),
            session_id=session_id,
            url=payload.url,
            upload_order=upload_order,
            file_name=payload.file_name,
            created_at=utcnow_iso(),
        )
        db_session.add(image)
        sess.updated_at = utcnow_iso()
        await db_session.commit()
        await db_session.refresh(image)

        data = ImageResponse.model_validate(image).model_dump()
    return success_response(data=data)


@router.get("/{session_id}/images")
async def list_images(session_id: str):
    async with async_session() as db_session:
        await _get_session_or_404(db_session, session_id)
        result = await db_session.execute(
            select(Image).where(Image.session_id == session_id).order_by(Image.upload_order)
        )
        images = result.scalars().all()

        data = []
        for image in images:
            image_data = ImageResponse.model_validate(image).model_dump()
            image_data["vision_metadata"] = json.loads(image.vision_metadata) if image.vision_metadata else None
            data.append(image_data)

    return success_response(data=data)


@router.get("/{session_id}/results")
async def get_session_results(session_id: str):
    async with async_session() as db_session:
        sess = await _get_session_or_404(db_session, session_id)
        analysis = await latest_result(db_session, session_id)

        return success_response(data={
            "session_status": sess.status,
            "failed_stage": sess.failed_stage,
            "error_message": sess.error_message,
            "result": _result_data(analysis) if analysis else None,
        })


@router.post("/{session_id}/archive")
async def archive_session(session_id: str):
    async with async_session() as db_session:
        sess = await _get_session_or_404(db_session, session_id)
        if sess.status == SessionStatus.PROCESSING.value:
            raise HTTPException(status_code=409, detail="Cannot archive a session while it is processing")

        sess.archived = 1
        sess.updated_at = utcnow_iso()
        await db_session.commit()
        await db_session.refresh(sess)

        data = SessionResponse.model_validate(sess).model_dump()
    return success_response(data=data)
