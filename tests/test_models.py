import json

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from critique.database import Base
from critique.models.session import Session
from critique.models.image import Image
from critique.models.analysis import AnalysisResult
from critique.models.status import IllegalStatusTransition, SessionStatus


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
    await engine.dispose()


def _session(**overrides):
    fields = dict(id="s-001", persona="clarity", intent="Book a demo")
    fields.update(overrides)
    return Session(**fields)


@pytest.mark.asyncio
async def test_create_session_defaults(db_session):
    db_session.add(_session())
    await db_session.commit()

    result = await db_session.get(Session, "s-001")
    assert result is not None
    assert result.status == "draft"
    assert result.mode == "single"
    assert result.archived == 0
    assert result.created_at
    assert result.updated_at


@pytest.mark.asyncio
async def test_session_status_walks_the_state_machine(db_session):
    sess = _session()
    db_session.add(sess)
    await db_session.commit()

    sess.move_to(SessionStatus.PROCESSING)
    sess.move_to(SessionStatus.COMPLETED)
    await db_session.commit()

    result = await db_session.get(Session, "s-001")
    assert result.status == "completed"


@pytest.mark.asyncio
async def test_session_rejects_illegal_transition(db_session):
    sess = _session()
    db_session.add(sess)
    await db_session.commit()

    with pytest.raises(IllegalStatusTransition):
        sess.status = "completed"

    sess.move_to(SessionStatus.PROCESSING)
    sess.move_to(SessionStatus.FAILED)
    with pytest.raises(IllegalStatusTransition):
        sess.move_to(SessionStatus.PROCESSING)


def test_new_session_cannot_start_past_draft():
    with pytest.raises(IllegalStatusTransition):
        _session(status="completed")


@pytest.mark.asyncio
async def test_create_image(db_session):
    db_session.add(_session())
    await db_session.flush()
    db_session.add(Image(
        id="i-001", session_id="s-001", url="https://images.example.com/home.png",
        upload_order=0, created_at="2026-10-01T10:00:00+00:00",
    ))
    await db_session.commit()

    result = await db_session.get(Image, "i-001")
    assert result is not None
    assert result.screen_type is None
    assert result.confidence is None


@pytest.mark.asyncio
async def test_image_order_is_unique_per_session(db_session):
    db_session.add(_session())
    await db_session.flush()
    for image_id in ("i-001", "i-002"):
        db_session.add(Image(
            id=image_id, session_id="s-001", url=f"https://images.example.com/{image_id}.png",
            upload_order=0, created_at="2026-10-01T10:00:00+00:00",
        ))
    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_create_analysis_result(db_session):
    db_session.add(_session())
    await db_session.flush()
    db_session.add(AnalysisResult(
        id="r-001",
        session_id="s-001",
        persona_feedback=json.dumps({"clarity": {"analysis": "Too busy"}}),
        synthesis_summary="Clarity reviewed 1 screen(s)",
        priority_matrix=json.dumps({"works": [], "hurts": ["Too busy"], "next": []}),
        annotations=json.dumps([]),
        model_metadata=json.dumps({"modelsUsed": ["claude"]}),
        created_at="2026-10-01T10:05:00+00:00",
    ))
    await db_session.commit()

    result = await db_session.get(AnalysisResult, "r-001")
    assert result is not None
    assert result.degraded == 0
    assert result.processing_time_ms == 0
    assert json.loads(result.priority_matrix)["hurts"] == ["Too busy"]
