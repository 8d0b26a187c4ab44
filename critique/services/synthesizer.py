"""Merge one or more analyzer outputs into a single canonical result.

With one source, its items pass through with agreement 1.0. With several,
items sharing kind, category, image and zone are merged and scored by the
share of analyzers that surfaced them. Output that cannot be normalized is
kept as raw text and the result is flagged as degraded.
"""
import logging
import re
from dataclasses import dataclass, field

from critique.models.persona import Persona
from critique.services.analyzers import normalize_output
from critique.services.analyzers.base import (
    AnalyzerOutput,
    FeedbackItem,
    NormalizedFeedback,
    infer_category,
)
from critique.services.personas import CARD_KEYS, profile_for
from critique.services.screen_classifier import ScreenDetection
from critique.services.zones import zone_for

logger = logging.getLogger(__name__)

OVERALL = "overall"
MATRIX_LIMIT = 5

SEVERITY_RANK = {"positive": 0, "low": 1, "medium": 2, "high": 3, "critical": 4}

GRIPE_LEVELS = ("low", "medium", "rage-cranked")
GRIPE_TRIGGERS = {
    "rage-cranked": ("rage", "terrible", "disaster", "awful"),
    "medium": ("annoying", "frustrating", "confusing", "problem"),
}

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")


@dataclass
class MergedItem:
    kind: str
    severity: str
    category: str
    text: str
    zone: str | None
    image_index: int | None
    sources: list[str]
    agreement: float
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    supporting: list[str] = field(default_factory=list)


@dataclass
class Synthesis:
    persona_feedback: dict
    summary: str
    priority_matrix: dict
    annotations: list[dict]
    metadata: dict
    persona_score: str | None = None
    degraded: bool = False


def raw_passthrough(output: AnalyzerOutput, reason: str) -> NormalizedFeedback:
    """Keep unparseable output as text; bullet lines become recommendations."""
    content = output.content or ""
    items = []
    for line in content.splitlines():
        if not _BULLET.match(line):
            continue
        text = _BULLET.sub("", line).strip()
        if len(text) > 10:
            items.append(FeedbackItem(
                kind="recommendation",
                severity="medium",
                category=infer_category(text),
                text=text,
                source=output.analyzer,
            ))
    return NormalizedFeedback(
        source=output.analyzer,
        model=output.model,
        analysis=content.strip(),
        items=items,
        warnings=[reason],
    )


def _mean(values: list[float]) -> float | None:
    return round(sum(values) / len(values), 2) if values else None


def _resolve_image_index(item: FeedbackItem, image_count: int) -> int | None:
    if not item.has_coordinates:
        return item.image_index
    if item.image_index is None or not 0 <= item.image_index < max(image_count, 1):
        return 0
    return item.image_index


def merge_items(normalized: list[NormalizedFeedback], image_count: int) -> list[MergedItem]:
    ran = len(normalized)
    groups: dict[tuple, list[FeedbackItem]] = {}

    for position, feedback in enumerate(normalized):
        for index, item in enumerate(feedback.items):
            image_index = _resolve_image_index(item, image_count)
            zone = zone_for(item.x, item.y) if item.has_coordinates else None
            if ran == 1:
                key = (position, index)
            else:
                key = (item.kind, item.category, image_index, zone or OVERALL)
            groups.setdefault(key, []).append(item)

    merged = []
    for items in groups.values():
        first = items[0]
        sources = list(dict.fromkeys(i.source for i in items))
        located = [i for i in items if i.has_coordinates]
        widths = [i.width for i in located if i.width is not None]
        heights = [i.height for i in located if i.height is not None]
        texts = list(dict.fromkeys(i.text for i in items))
        merged.append(MergedItem(
            kind=first.kind,
            severity=max((i.severity for i in items), key=lambda s: SEVERITY_RANK.get(s, 2)),
            category=first.category,
            text=texts[0],
            zone=zone_for(first.x, first.y) if first.has_coordinates else None,
            image_index=_resolve_image_index(first, image_count),
            sources=sources,
            agreement=len(sources) / ran,
            x=_mean([i.x for i in located]),
            y=_mean([i.y for i in located]),
            width=_mean(widths),
            height=_mean(heights),
            supporting=texts[1:],
        ))
    return merged


def _annotation(item: MergedItem, number: int, persona: Persona, image_ids: list[str | None]) -> dict:
    image_id = image_ids[item.image_index] if item.image_index is not None and item.image_index < len(image_ids) else None
    return {
        "id": f"{persona.value}-annotation-{number}",
        "imageId": image_id,
        "imageIndex": item.image_index,
        "x": item.x,
        "y": item.y,
        "width": item.width,
        "height": item.height,
        "zone": item.zone,
        "kind": item.kind,
        "severity": item.severity,
        "category": item.category,
        "description": item.text,
        "supporting": item.supporting,
        "sources": item.sources,
        "agreement": item.agreement,
    }


def _overall(item: MergedItem) -> dict:
    return {
        "kind": item.kind,
        "severity": item.severity,
        "category": item.category,
        "description": item.text,
        "supporting": item.supporting,
        "sources": item.sources,
        "agreement": item.agreement,
    }


def _texts(items: list[MergedItem], extra=None) -> list[str]:
    texts = [i.text for i in items]
    if isinstance(extra, str) and extra.strip():
        texts.append(extra.strip())
    return list(dict.fromkeys(texts))[:MATRIX_LIMIT]


def build_priority_matrix(merged: list[MergedItem], persona: Persona, fields: dict) -> dict:
    by_agreement = lambda i: -i.agreement
    strengths = sorted((i for i in merged if i.kind == "strength"), key=by_agreement)
    issues = sorted(
        (i for i in merged if i.kind == "issue"),
        key=lambda i: (-SEVERITY_RANK.get(i.severity, 2), -i.agreement),
    )
    recommendations = sorted((i for i in merged if i.kind == "recommendation"), key=by_agreement)

    works = _texts(strengths, fields.get("whatMakesGoblinHappy"))
    hurts = _texts(issues, fields.get("biggestGripe"))
    next_steps = _texts(recommendations)
    return {
        "works": works or ["Design foundation is in place"],
        "hurts": hurts or ["User experience optimization needed"],
        "next": next_steps or list(profile_for(persona).default_next_steps),
    }


def gripe_level(fields: dict, analysis: str) -> str:
    declared = fields.get("gripeLevel")
    if isinstance(declared, str) and declared.strip().lower() in GRIPE_LEVELS:
        return declared.strip().lower()
    lowered = analysis.lower()
    for level, triggers in GRIPE_TRIGGERS.items():
        if any(trigger in lowered for trigger in triggers):
            return level
    return "low"


def _card_text(value) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        joined = ", ".join(str(v).strip() for v in value if str(v).strip())
        return joined or None
    return None


def persona_card(persona: Persona, fields: dict) -> dict[str, str]:
    """The four-line feedback card every persona gets, filled from its own keys first."""
    profile = profile_for(persona)
    card = {}
    for key in CARD_KEYS:
        sources = profile.card_sources.get(key, ()) + (key,)
        texts = (_card_text(fields.get(source)) for source in sources)
        card[key] = next((t for t in texts if t), profile.card_defaults[key])
    return card


def build_summary(
    persona: Persona,
    intent: str,
    image_count: int,
    normalized: list[NormalizedFeedback],
    merged: list[MergedItem],
    matrix: dict,
    degraded: bool,
) -> str:
    profile = profile_for(persona)
    issues = sum(1 for i in merged if i.kind == "issue")
    strengths = sum(1 for i in merged if i.kind == "strength")
    recommendations = sum(1 for i in merged if i.kind == "recommendation")

    parts = []
    goal = f" for \"{intent.strip()}\"" if intent and intent.strip() else ""
    parts.append(
        f"{profile.display_name} reviewed {image_count} screen(s){goal} using "
        f"{len(normalized)} model(s): {issues} issue(s), {strengths} strength(s) and "
        f"{recommendations} recommendation(s)."
    )
    if issues:
        parts.append(f"Top concern: {matrix['hurts'][0]}")
    if len(normalized) > 1:
        consensus = sum(1 for i in merged if i.agreement == 1.0)
        parts.append(f"Analyzers agreed on {consensus} of {len(merged)} finding(s).")
    if degraded:
        parts.append("This result is partial: not every configured analyzer contributed structured feedback.")
    return " ".join(parts)


def synthesize(
    outputs: list[AnalyzerOutput],
    detections: list[ScreenDetection],
    persona: Persona | str,
    configured: int | None = None,
    intent: str = "",
    normalizer=normalize_output,
) -> Synthesis:
    """Synthesize successful analyzer outputs. Raises only when given none."""
    if not outputs:
        raise ValueError("synthesize() needs at least one analyzer output")

    persona = Persona(persona)
    profile = profile_for(persona)
    configured = max(configured or len(outputs), len(outputs))

    normalized: list[NormalizedFeedback] = []
    warnings: list[str] = []
    for output in outputs:
        try:
            normalized.append(normalizer(output, persona))
        except Exception as e:
            reason = f"{output.analyzer}: {e}"
            logger.warning("Passing raw %s output through synthesis: %s", output.analyzer, e)
            warnings.append(reason)
            normalized.append(raw_passthrough(output, reason))

    ordered = sorted(detections, key=lambda d: d.order)
    image_ids = [d.image_id for d in ordered]
    image_count = len(ordered)

    merged = merge_items(normalized, image_count)
    located = sorted(
        (i for i in merged if i.zone is not None),
        key=lambda i: (i.image_index or 0, -SEVERITY_RANK.get(i.severity, 2), -i.agreement),
    )
    unlocated = [i for i in merged if i.zone is None]

    fields: dict = {}
    for feedback in normalized:
        for key, value in feedback.fields.items():
            fields.setdefault(key, value)
    analyses = [f.analysis for f in normalized if f.analysis]
    combined_analysis = "\n\n".join(analyses)

    degraded = bool(warnings) or len(normalized) < configured
    matrix = build_priority_matrix(merged, persona, fields)
    annotations = [_annotation(item, n, persona, image_ids) for n, item in enumerate(located, start=1)]

    persona_feedback = {
        persona.value: {
            "analysis": combined_analysis,
            "analysisBySource": {f.source: f.analysis for f in normalized},
            "recommendations": matrix["next"],
            "overall": [_overall(item) for item in unlocated],
            **fields,
            **persona_card(persona, fields),
        }
    }

    agreement = round(sum(i.agreement for i in merged) / len(merged), 4) if merged else 1.0
    metadata = {
        "persona": persona.value,
        "modelsUsed": [f.model for f in normalized],
        "analyzers": [f.source for f in normalized],
        "analyzersConfigured": configured,
        "agreement": agreement,
        "consensusItems": sum(1 for i in merged if i.agreement == 1.0) if len(normalized) > 1 else len(merged),
        "itemCount": len(merged),
        "annotationCount": len(annotations),
        "screenTypes": [d.screen_type for d in ordered],
        "visionSuccessRate": round(sum(1 for d in ordered if not d.failed) / image_count, 4) if image_count else 0.0,
        "warnings": warnings,
        "degraded": degraded,
    }

    return Synthesis(
        persona_feedback=persona_feedback,
        summary=build_summary(persona, intent, image_count, normalized, merged, matrix, degraded),
        priority_matrix=matrix,
        annotations=annotations,
        metadata=metadata,
        persona_score=gripe_level(fields, combined_analysis) if profile.scored else None,
        degraded=degraded,
    )
