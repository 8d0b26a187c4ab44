"""Build the model instruction set for one analysis session.

``build_prompt`` is pure: same inputs, same output, no I/O.
"""
import json
from dataclasses import dataclass, field

from critique.models.persona import AnalysisMode, Persona
from critique.services.personas import profile_for
from critique.services.screen_classifier import ScreenDetection

CONFIDENCE_CONTEXT = {
    1: "Low confidence - exploring early concepts and ideas",
    2: "Medium confidence - refining and improving existing designs",
    3: "High confidence - polishing and optimizing near-final designs",
}
DEFAULT_CONFIDENCE_CONTEXT = "Standard confidence level"

ANNOTATION_TEMPLATE = {
    "imageIndex": "0-based index of the screenshot",
    "x": "horizontal position in percent (0-100) from the left edge",
    "y": "vertical position in percent (0-100) from the top edge",
    "width": "optional width in percent",
    "height": "optional height in percent",
    "category": "navigation | conversion | readability | usability | interaction | responsive | performance | validation",
    "severity": "positive | low | medium | high | critical",
    "description": "What you see at this spot and what to do about it",
}


@dataclass(frozen=True)
class BuiltPrompt:
    system_message: str
    user_prompt: str
    metadata: dict = field(default_factory=dict)


def confidence_context(goal_confidence: int | None) -> str:
    return CONFIDENCE_CONTEXT.get(goal_confidence, DEFAULT_CONFIDENCE_CONTEXT)


def describe_screens(detections: list[ScreenDetection]) -> list[str]:
    lines = []
    for index, detection in enumerate(sorted(detections, key=lambda d: d.order)):
        if detection.failed:
            lines.append(f"Image {index}: unknown screen type")
        elif detection.confidence:
            lines.append(
                f"Image {index}: detected as \"{detection.screen_type}\" "
                f"({detection.confidence:.0%} confidence)"
            )
        else:
            lines.append(f"Image {index}: detected as \"{detection.screen_type}\"")
    return lines


def response_format(persona: Persona) -> dict:
    profile = profile_for(persona)
    template = {
        "analysis": "Your overall analysis of what you observe in the screenshots",
        "recommendations": ["Specific actionable recommendation", "..."],
        "strengths": ["What works well", "..."],
        "annotations": [ANNOTATION_TEMPLATE],
    }
    template.update(profile.response_fields)
    return template


def build_prompt(
    persona: Persona | str,
    mode: AnalysisMode | str,
    intent: str,
    goal_confidence: int | None,
    detections: list[ScreenDetection],
) -> BuiltPrompt:
    persona = Persona(persona)
    mode = AnalysisMode(mode)
    profile = profile_for(persona)

    image_count = len(detections)
    scope = "Multi-screen user journey analysis" if image_count > 1 else "Single screen analysis"
    screen_lines = describe_screens(detections)

    sections = [
        f"{profile.goal_label}: \"{intent.strip()}\"",
        f"{profile.scope_label}: {image_count} screen(s) - {scope}",
        f"{profile.confidence_label}: {confidence_context(goal_confidence)}",
        "",
        "Screen classification context:",
        *screen_lines,
        "",
        "You can SEE the screenshots. Base every point on what is visually present, "
        "and pin spatial feedback to the exact spot with percentage coordinates.",
        "",
        "Respond with valid JSON only, in this exact format:",
        json.dumps(response_format(persona), indent=2),
    ]

    metadata = {
        "persona": persona.value,
        "mode": mode.value,
        "imageCount": image_count,
        "confidence": goal_confidence,
        "analysisType": "user_journey" if image_count > 1 else "single_screen",
        "focus": list(profile.focus),
        "temperature": profile.temperature,
        "unknownScreens": sum(1 for d in detections if d.failed),
    }
    return BuiltPrompt(
        system_message=profile.system_message,
        user_prompt="\n".join(sections),
        metadata=metadata,
    )
