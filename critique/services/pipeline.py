import asyncio
import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update

from critique.config import settings
from critique.database import async_session
from critique.models.analysis import AnalysisResult
from critique.models.image import Image
from critique.models.persona import AnalysisMode, Persona
from critique.models.session import Session, utcnow_iso
from critique.models.status import SessionStatus, ensure_transition
from critique.services.analyzers import Analyzer, AnalyzerError, AnalyzerRequest, build_analyzers
from critique.services.prompt_builder import BuiltPrompt, build_prompt
from critique.services.screen_classifier import (
    FALLBACK_SCREEN_TYPE,
    ScreenClassifier,
    ScreenDetection,
    fallback_detection,
)
from critique.services.synthesizer import synthesize
from critique.utils.result import Err, Ok, StageResult

logger = logging.getLogger(__name__)

STAGE_VALIDATION = "validation"
STAGE_CLASSIFICATION = "classification"
STAGE_PROMPT = "prompt"
STAGE_ANALYSIS = "analysis"
STAGE_SYNTHESIS = "synthesis"
STAGE_PERSISTENCE = "persistence"
STAGE_STALLED = "stalled"

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

_SECRET_PATTERNS = [
    (re.compile(r"sk-[A-Za-z0-9_-]+"), "sk-***"),
    (re.compile(r"key=[A-Za-z0-9_-]+"), "key=***"),
]


def mask_secrets(message: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def is_retryable(error: Exception) -> bool:
    """AnalyzerError and non-transient HTTP statuses are not worth another attempt."""
    if isinstance(error, AnalyzerError):
        return False
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code in RETRYABLE_STATUS_CODES
    return True


@dataclass
class StartOutcome:
    """What a caller sees from ``start``: status, never an exception.

    ``code`` is one of ``completed``, ``failed``, ``already_started``,
    ``not_found`` or ``invalid``.
    """

    session_id: str | None
    status: str | None
    code: str
    message: str
    stage: str | None = None
    error: str | None = None
    result_id: str | None = None

    @property
    def success(self) -> bool:
        return self.code == "completed"


@dataclass(frozen=True)
class _ImageRef:
    id: str
    url: str
    order: int


@dataclass(frozen=True)
class _RunContext:
    session_id: str
    persona: Persona
    mode: AnalysisMode
    intent: str
    goal_confidence: int | None
    images: tuple[_ImageRef, ...]


class AnalysisPipeline:
    """Session controller: claims a draft session and drives it to a terminal status."""

    def __init__(
        self,
        classifier: ScreenClassifier | None = None,
        analyzer_factory=build_analyzers,
        session_factory=async_session,
        analyzer_timeout: float | None = None,
        analyzer_max_attempts: int | None = None,
        retry_delay: float | None = None,
    ):
        self._classifier = classifier or ScreenClassifier()
        self._analyzer_factory = analyzer_factory
        self._session_factory = session_factory
        self._analyzer_timeout = settings.analyzer_timeout_seconds if analyzer_timeout is None else analyzer_timeout
        self._max_attempts = max(1, analyzer_max_attempts or settings.analyzer_max_attempts)
        self._retry_delay = settings.analyzer_retry_delay_seconds if retry_delay is None else retry_delay

    async def start(self, session_id: str | None) -> StartOutcome:
        if not session_id:
            return StartOutcome(None, None, "invalid", "sessionId is required", stage=STAGE_VALIDATION,
                                error="sessionId is required")

        async with self._session_factory() as db:
            sess = await db.get(Session, session_id)
            if sess is None:
                return StartOutcome(session_id, None, "not_found", "Session not found", stage=STAGE_VALIDATION,
                                    error="Session not found")
            if sess.status != SessionStatus.DRAFT.value:
                return self._already_started(sess)

            result = await db.execute(
                select(Image).where(Image.session_id == session_id).order_by(Image.upload_order)
            )
            images = result.scalars().all()
            if not images:
                logger.warning("Refusing to start session %s: no images", session_id)
                return StartOutcome(session_id, sess.status, "invalid", "Session has no images",
                                    stage=STAGE_VALIDATION, error="Session has no images")

            try:
                context = _RunContext(
                    session_id=session_id,
                    persona=Persona(sess.persona),
                    mode=AnalysisMode(sess.mode),
                    intent=sess.intent or "",
                    goal_confidence=sess.goal_confidence,
                    images=tuple(_ImageRef(i.id, i.url, i.upload_order) for i in images),
                )
            except ValueError as e:
                return StartOutcome(session_id, sess.status, "invalid", str(e), stage=STAGE_VALIDATION, error=str(e))

            # conditional update so that only one caller wins the draft -> processing claim
            ensure_transition(sess.status, SessionStatus.PROCESSING)
            claim = await db.execute(
                update(Session)
                .where(Session.id == session_id, Session.status == SessionStatus.DRAFT.value)
                .values(status=SessionStatus.PROCESSING.value, updated_at=utcnow_iso())
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if claim.rowcount != 1:
                await db.refresh(sess)
                return self._already_started(sess)

        logger.info("Session %s claimed: persona=%s mode=%s images=%d",
                    session_id, context.persona.value, context.mode.value, len(context.images))
        return await self._run(context)

    def _already_started(self, sess: Session) -> StartOutcome:
        logger.info("Session %s already %s, start is a no-op", sess.id, sess.status)
        return StartOutcome(
            sess.id, sess.status, "already_started", f"Session is already {sess.status}",
            stage=sess.failed_stage,
        )

    async def _run(self, ctx: _RunContext) -> StartOutcome:
        started = time.monotonic()
        stage = STAGE_CLASSIFICATION
        try:
            detections = await self._classify(ctx.images)
            await self._store_detections(ctx.session_id, detections)

            stage = STAGE_PROMPT
            prompt = self._build_prompt(ctx, detections)
            if isinstance(prompt, Err):
                return await self._fail(ctx.session_id, STAGE_PROMPT, prompt.reason)

            stage = STAGE_ANALYSIS
            analyzers = self._analyzer_factory(ctx.mode)
            request = AnalyzerRequest(
                prompt=prompt.value,
                image_urls=[image.url for image in ctx.images],
                persona=ctx.persona,
            )
            outcomes = await asyncio.gather(*(self._run_analyzer(a, request) for a in analyzers))
            successes = [o.value for o in outcomes if isinstance(o, Ok)]
            errors = {o.source: o.reason for o in outcomes if isinstance(o, Err)}
            if not successes:
                detail = "; ".join(f"{name}: {reason}" for name, reason in errors.items())
                return await self._fail(ctx.session_id, STAGE_ANALYSIS, f"All analyzers failed ({detail})")
            await self._touch(ctx.session_id)

            stage = STAGE_SYNTHESIS
            by_name = {a.name: a for a in analyzers}
            synthesis = synthesize(
                successes,
                detections,
                ctx.persona,
                configured=len(analyzers),
                intent=ctx.intent,
                normalizer=lambda output, persona: by_name[output.analyzer].normalize(output, persona),
            )
            synthesis.metadata["analyzerErrors"] = errors
            synthesis.metadata["prompt"] = prompt.value.metadata

            stage = STAGE_PERSISTENCE
            elapsed_ms = int((time.monotonic() - started) * 1000)
            result_id = await self._persist(ctx.session_id, synthesis, elapsed_ms)
        except Exception as e:
            logger.exception("Analysis FAILED for session %s at stage %s", ctx.session_id, stage)
            return await self._fail(ctx.session_id, stage, str(e) or e.__class__.__name__)

        logger.info("Session %s completed in %dms (%d annotations, degraded=%s)",
                    ctx.session_id, elapsed_ms, len(synthesis.annotations), synthesis.degraded)
        message = "Analysis completed"
        if synthesis.degraded:
            message = "Analysis completed with partial results"
        return StartOutcome(ctx.session_id, SessionStatus.COMPLETED.value, "completed", message, result_id=result_id)

    async def _classify(self, images: tuple[_ImageRef, ...]) -> list[ScreenDetection]:
        outcomes = await asyncio.gather(
            *(self._classifier.classify(image.url, image.order, image.id) for image in images),
            return_exceptions=True,
        )
        detections = []
        for image, outcome in zip(images, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Classifier raised for image %d: %s", image.order, outcome)
                outcome = fallback_detection(image.order, str(outcome) or outcome.__class__.__name__, image.id)
            if outcome.image_id is None:
                outcome.image_id = image.id
            detections.append(outcome)

        failed = sum(1 for d in detections if d.failed)
        if failed:
            logger.warning("%d/%d images fell back to '%s'", failed, len(detections), FALLBACK_SCREEN_TYPE)
        return detections

    async def _store_detections(self, session_id: str, detections: list[ScreenDetection]) -> None:
        async with self._session_factory() as db:
            for detection in detections:
                image = await db.get(Image, detection.image_id)
                if image is None:
                    continue
                image.screen_type = detection.screen_type
                image.confidence = detection.confidence
                image.classification_error = mask_secrets(detection.error) if detection.error else None
                image.vision_metadata = json.dumps(detection.metadata())
            await self._heartbeat(db, session_id)
            await db.commit()

    async def _touch(self, session_id: str) -> None:
        async with self._session_factory() as db:
            await self._heartbeat(db, session_id)
            await db.commit()

    @staticmethod
    async def _heartbeat(db, session_id: str) -> None:
        # keeps a live run out of recover_stalled_sessions
        await db.execute(
            update(Session)
            .where(Session.id == session_id, Session.status == SessionStatus.PROCESSING.value)
            .values(updated_at=utcnow_iso())
            .execution_options(synchronize_session=False)
        )

    def _build_prompt(self, ctx: _RunContext, detections: list[ScreenDetection]) -> StageResult[BuiltPrompt]:
        try:
            return Ok(build_prompt(ctx.persona, ctx.mode, ctx.intent, ctx.goal_confidence, detections))
        except Exception as e:
            logger.exception("Prompt building failed for session %s", ctx.session_id)
            return Err(str(e) or e.__class__.__name__, source=STAGE_PROMPT)

    async def _run_analyzer(self, analyzer: Analyzer, request: AnalyzerRequest) -> StageResult:
        last_error = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                output = await asyncio.wait_for(analyzer.analyze(request), timeout=self._analyzer_timeout)
                return Ok(output)
            except asyncio.TimeoutError:
                last_error = f"timed out after {self._analyzer_timeout}s"
            except Exception as e:
                last_error = mask_secrets(str(e) or e.__class__.__name__)
                if not is_retryable(e):
                    logger.warning("Analyzer %s failed without retry: %s", analyzer.name, last_error)
                    return Err(last_error, source=analyzer.name)

            logger.warning("Analyzer %s attempt %d/%d failed: %s",
                           analyzer.name, attempt, self._max_attempts, last_error)
            if attempt < self._max_attempts:
                await asyncio.sleep(self._retry_delay * 2 ** (attempt - 1))

        return Err(last_error, source=analyzer.name)

    async def _persist(self, session_id: str, synthesis, elapsed_ms: int) -> str:
        result_id = str(uuid.uuid4())
        synthesis.metadata["processingTimeMs"] = elapsed_ms
        async with self._session_factory() as db:
            db.add(AnalysisResult(
                id=result_id,
                session_id=session_id,
                persona_feedback=json.dumps(synthesis.persona_feedback),
                synthesis_summary=synthesis.summary,
                priority_matrix=json.dumps(synthesis.priority_matrix),
                annotations=json.dumps(synthesis.annotations),
                model_metadata=json.dumps(synthesis.metadata),
                processing_time_ms=elapsed_ms,
                persona_score=synthesis.persona_score,
                degraded=1 if synthesis.degraded else 0,
                created_at=utcnow_iso(),
            ))
            sess = await db.get(Session, session_id)
            sess.move_to(SessionStatus.COMPLETED)
            await db.commit()
        return result_id

    async def _fail(self, session_id: str, stage: str, message: str) -> StartOutcome:
        message = mask_secrets(message)
        logger.error("Session %s failed at stage %s: %s", session_id, stage, message)
        try:
            async with self._session_factory() as db:
                sess = await db.get(Session, session_id)
                if sess is not None and sess.status == SessionStatus.PROCESSING.value:
                    sess.failed_stage = stage
                    sess.error_message = message[:2000]
                    sess.move_to(SessionStatus.FAILED)
                    await db.commit()
        except Exception:
            logger.exception("Could not record failure for session %s", session_id)
        return StartOutcome(session_id, SessionStatus.FAILED.value, "failed", message, stage=stage, error=message)


async def recover_stalled_sessions(
    older_than_minutes: int | None = None,
    session_factory=async_session,
) -> list[str]:
    """Fail sessions stuck in ``processing`` (e.g. the worker died mid-run)."""
    minutes = settings.stalled_session_minutes if older_than_minutes is None else older_than_minutes
    cutoff = (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()

    async with session_factory() as db:
        result = await db.execute(
            select(Session).where(
                Session.status == SessionStatus.PROCESSING.value,
                Session.updated_at < cutoff,
            )
        )
        stalled = result.scalars().all()
        for sess in stalled:
            sess.failed_stage = STAGE_STALLED
            sess.error_message = f"No progress for more than {minutes} minutes"
            sess.move_to(SessionStatus.FAILED)
        await db.commit()

    if stalled:
        logger.warning("Marked %d stalled sessions as failed", len(stalled))
    return [s.id for s in stalled]
