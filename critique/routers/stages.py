"""Single-stage endpoints: each runs one pipeline stage in isolation."""
import asyncio
import logging

from fastapi import APIRouter, Depends

from critique.config import settings
from critique.dependencies import get_analyzer_lookup, get_classifier
from critique.services.analyzers import AnalyzerError, AnalyzerOutput, AnalyzerRequest
from critique.services.pipeline import mask_secrets
from critique.services.prompt_builder import BuiltPrompt, build_prompt
from critique.services.screen_classifier import FALLBACK_SCREEN_TYPE, ScreenDetection, fallback_detection
from critique.services.synthesizer import synthesize
from critique.schemas.stages import AnalyzeRequest, ClassifyRequest, PromptRequest, SynthesizeRequest
from critique.utils.exceptions import AppException
from critique.utils.response import stage_error, stage_success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stages", tags=["stages"])


@router.post("/classify")
async def classify_screen(payload: ClassifyRequest, classifier=Depends(get_classifier)):
    detection = await classifier.classify(payload.image_url, payload.order, payload.image_id)
    if detection.failed:
        return stage_error(
            detection.error,
            "classification",
            fallback={"screenType": detection.screen_type, "confidence": 0.0, "metadata": detection.metadata()},
        )
    return stage_success(
        screenType=detection.screen_type,
        confidence=detection.confidence,
        metadata=detection.metadata(),
    )


@router.post("/prompt")
async def build_persona_prompt(payload: PromptRequest):
    detections = []
    for order, screen_type in enumerate(payload.screen_types):
        if not screen_type or screen_type == FALLBACK_SCREEN_TYPE:
            detections.append(fallback_detection(order, "unclassified"))
        else:
            detections.append(ScreenDetection(order=order, screen_type=screen_type, confidence=0.0))

    prompt = build_prompt(payload.persona, payload.mode, payload.goal, payload.confidence, detections)
    return {
        "systemMessage": prompt.system_message,
        "prompt": prompt.user_prompt,
        "metadata": prompt.metadata,
    }


@router.post("/analyze/{analyzer_name}")
async def run_analyzer(analyzer_name: str, payload: AnalyzeRequest, lookup=Depends(get_analyzer_lookup)):
    try:
        analyzer = lookup(analyzer_name)
    except AnalyzerError as e:
        raise AppException(str(e), status_code=404)

    request = AnalyzerRequest(
        prompt=BuiltPrompt(payload.system_message, payload.prompt, payload.metadata),
        image_urls=payload.image_urls,
        persona=payload.persona,
    )
    try:
        output = await asyncio.wait_for(analyzer.analyze(request), timeout=settings.analyzer_timeout_seconds)
    except asyncio.TimeoutError:
        raise AppException(f"{analyzer_name} timed out after {settings.analyzer_timeout_seconds}s", status_code=504)
    except Exception as e:
        logger.warning("Analyzer %s failed: %s", analyzer_name, e)
        raise AppException(f"{analyzer_name} failed: {mask_secrets(str(e))}", status_code=502)

    try:
        analysis = analyzer.normalize(output, payload.persona).analysis
    except Exception as e:
        logger.warning("Could not normalize %s output: %s", analyzer_name, e)
        analysis = output.content

    return {
        "result": {"content": output.content, "analysis": analysis, "payload": output.payload},
        "metadata": {
            "analyzer": output.analyzer,
            "model": output.model,
            "durationMs": round(output.duration_ms),
            **output.metadata,
        },
    }


@router.post("/synthesize")
async def synthesize_results(payload: SynthesizeRequest):
    outputs = [
        AnalyzerOutput(analyzer=r.analyzer, model=r.model or r.analyzer, content=r.content, payload=r.payload)
        for r in payload.analyzer_results
    ]
    detections = []
    for position, d in enumerate(payload.screen_detections):
        order = d.order if d.order is not None else position
        detections.append(ScreenDetection(
            order=order,
            screen_type=d.screen_type,
            confidence=d.confidence,
            error=d.error,
            image_id=d.image_id,
        ))

    synthesis = synthesize(
        outputs,
        detections,
        payload.persona,
        configured=payload.analyzers_configured,
        intent=payload.intent,
    )
    return {
        "feedback": synthesis.persona_feedback,
        "summary": synthesis.summary,
        "priorities": synthesis.priority_matrix,
        "annotations": synthesis.annotations,
        "metadata": synthesis.metadata,
        "personaScore": synthesis.persona_score,
        "degraded": synthesis.degraded,
    }
