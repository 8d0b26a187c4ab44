"""Analyzer interface and the normalized feedback shape.

Each backend returns its own JSON flavour; a per-backend normalizer turns it
into ``NormalizedFeedback`` so the synthesizer never sees raw payloads.
"""
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from critique.models.persona import Persona
from critique.services.personas import profile_for
from critique.services.prompt_builder import BuiltPrompt
from critique.services.zones import clamp_percent

SEVERITIES = ("positive", "low", "medium", "high", "critical")

SEVERITY_ALIASES = {
    "good": "positive",
    "strength": "positive",
    "praise": "positive",
    "minor": "low",
    "info": "low",
    "moderate": "medium",
    "warning": "medium",
    "major": "high",
    "severe": "critical",
    "blocker": "critical",
}

CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("navigation", ("navigation", "menu", "nav", "header", "sidebar")),
    ("conversion", ("button", "cta", "call-to-action", "convert", "sign up", "buy", "purchase")),
    ("readability", ("content", "text", "hierarchy", "typography", "font", "read")),
    ("interaction", ("feedback", "response", "click", "hover", "interaction")),
    ("responsive", ("mobile", "tablet", "responsive", "touch", "device")),
    ("performance", ("loading", "speed", "performance", "wait", "fast")),
    ("validation", ("error", "validation", "form", "mistake", "prevent")),
    ("usability", ("flow", "path", "journey", "user", "ease", "simple")),
]
DEFAULT_CATEGORY = "usability"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AnalyzerError(Exception):
    pass


class MalformedAnalyzerOutput(Exception):
    pass


@dataclass
class AnalyzerRequest:
    prompt: BuiltPrompt
    image_urls: list[str]
    persona: Persona


@dataclass
class AnalyzerOutput:
    analyzer: str
    model: str
    content: str
    payload: dict | None = None
    duration_ms: float = 0.0
    metadata: dict = field(default_factory=dict)


@dataclass
class FeedbackItem:
    kind: str  # issue | strength | recommendation
    severity: str
    category: str
    text: str
    source: str
    image_index: int | None = None
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.x is not None and self.y is not None


@dataclass
class NormalizedFeedback:
    source: str
    model: str
    analysis: str
    items: list[FeedbackItem]
    fields: dict = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def extract_json(text: str) -> dict | None:
    """Pull a JSON object out of a model reply (handles markdown code blocks)."""
    json_text = text.strip()
    if json_text.startswith("```"):
        lines = json_text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        json_text = "\n".join(lines)

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(json_text)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def normalize_severity(value) -> str:
    if not isinstance(value, str):
        return "medium"
    value = value.strip().lower()
    value = SEVERITY_ALIASES.get(value, value)
    return value if value in SEVERITIES else "medium"


def infer_category(text: str, declared=None) -> str:
    if isinstance(declared, str) and declared.strip():
        return declared.strip().lower()
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def _as_text(value) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in ("description", "text", "feedback", "title"):
            if isinstance(value.get(key), str):
                return value[key].strip()
    return ""


def _as_number(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        return float(value)
    except ValueError:
        return None


def text_items(values, kind: str, severity: str, source: str) -> list[FeedbackItem]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, list):
        return []
    items = []
    for value in values:
        text = _as_text(value)
        if not text:
            continue
        declared = value.get("category") if isinstance(value, dict) else None
        items.append(FeedbackItem(
            kind=kind,
            severity=severity,
            category=infer_category(text, declared),
            text=text,
            source=source,
        ))
    return items


def annotation_item(entry: dict, source: str, coordinate_scale: float = 1.0) -> FeedbackItem | None:
    """Build an item from one spatial annotation; bad coordinates drop to no zone."""
    text = _as_text(entry)
    if not text:
        return None

    x = _as_number(entry.get("x"))
    y = _as_number(entry.get("y"))
    width = _as_number(entry.get("width"))
    height = _as_number(entry.get("height"))
    if x is None or y is None:
        x = y = width = height = None
    else:
        x = clamp_percent(x * coordinate_scale)
        y = clamp_percent(y * coordinate_scale)
        width = clamp_percent(width * coordinate_scale) if width is not None else None
        height = clamp_percent(height * coordinate_scale) if height is not None else None

    image_index = _as_number(entry.get("imageIndex", entry.get("image_index")))
    severity = normalize_severity(entry.get("severity", entry.get("priority")))
    return FeedbackItem(
        kind="strength" if severity == "positive" else "issue",
        severity=severity,
        category=infer_category(text, entry.get("category")),
        text=text,
        source=source,
        image_index=int(image_index) if image_index is not None else None,
        x=x,
        y=y,
        width=width,
        height=height,
    )


def normalize_payload(
    output: AnalyzerOutput,
    persona: Persona | str,
    payload,
    annotations: list,
    coordinate_scale: float = 1.0,
    extra_issue_keys: tuple[str, ...] = (),
) -> NormalizedFeedback:
    """Shared part of every backend normalizer."""
    if not isinstance(payload, dict):
        raise MalformedAnalyzerOutput(f"{output.analyzer} returned no JSON object")

    profile = profile_for(persona)
    source = output.analyzer
    items: list[FeedbackItem] = []

    if not isinstance(annotations, list):
        annotations = []
    for entry in annotations:
        if isinstance(entry, dict):
            item = annotation_item(entry, source, coordinate_scale)
            if item is not None:
                items.append(item)

    for key in extra_issue_keys:
        items.extend(text_items(payload.get(key), "issue", "medium", source))
    items.extend(text_items(payload.get("strengths"), "strength", "positive", source))
    for key in profile.recommendation_keys:
        items.extend(text_items(payload.get(key), "recommendation", "medium", source))

    analysis = _as_text(payload.get("analysis")) or _as_text(payload.get("executiveSummary")) \
        or _as_text(payload.get("insights")) or _as_text(payload.get("hypothesis"))

    fields = {key: payload[key] for key in profile.response_fields if key in payload}
    return NormalizedFeedback(
        source=source,
        model=output.model,
        analysis=analysis,
        items=items,
        fields=fields,
    )


class Analyzer(ABC):
    """One vision-capable model backend."""

    name: str = ""

    @abstractmethod
    async def analyze(self, request: AnalyzerRequest) -> AnalyzerOutput:
        """Run the model. Raises on any failure; the pipeline owns the policy."""
        ...

    @abstractmethod
    def normalize(self, output: AnalyzerOutput, persona: Persona | str) -> NormalizedFeedback:
        ...
