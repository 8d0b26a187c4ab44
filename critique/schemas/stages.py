"""Request bodies for the stage endpoints and ``/analysis/start``.

These are called by the web UI, which speaks camelCase.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from critique.models.persona import AnalysisMode, Persona


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClassifyRequest(CamelModel):
    image_url: str = Field(min_length=1)
    order: int = 0
    image_id: str | None = None


class PromptRequest(CamelModel):
    persona: Persona
    mode: AnalysisMode = AnalysisMode.SINGLE
    goal: str = ""
    confidence: int | None = Field(default=None, ge=1, le=3)
    screen_types: list[str | None] = []


class AnalyzeRequest(CamelModel):
    prompt: str = Field(min_length=1)
    system_message: str = ""
    image_urls: list[str] = Field(min_length=1)
    persona: Persona
    metadata: dict = {}


class AnalyzerResultIn(CamelModel):
    analyzer: str
    model: str = ""
    content: str = ""
    payload: dict | None = None


class DetectionIn(CamelModel):
    order: int | None = None
    image_id: str | None = None
    screen_type: str = "interface"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    error: str | None = None


class SynthesizeRequest(CamelModel):
    analyzer_results: list[AnalyzerResultIn] = Field(min_length=1)
    screen_detections: list[DetectionIn] = []
    persona: Persona
    intent: str = ""
    analyzers_configured: int | None = Field(default=None, ge=1)


class StartRequest(CamelModel):
    session_id: str | None = None
