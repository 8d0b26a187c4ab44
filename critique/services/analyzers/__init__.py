from critique.config import settings
from critique.models.persona import AnalysisMode, Persona
from critique.services.analyzers.base import (
    Analyzer,
    AnalyzerError,
    AnalyzerOutput,
    AnalyzerRequest,
    FeedbackItem,
    MalformedAnalyzerOutput,
    NormalizedFeedback,
)
from critique.services.analyzers.claude import ClaudeAnalyzer, normalize_claude_output
from critique.services.analyzers.gpt import OpenAIAnalyzer, normalize_openai_output

ANALYZERS: dict[str, type[Analyzer]] = {
    ClaudeAnalyzer.name: ClaudeAnalyzer,
    OpenAIAnalyzer.name: OpenAIAnalyzer,
}

NORMALIZERS = {
    ClaudeAnalyzer.name: normalize_claude_output,
    OpenAIAnalyzer.name: normalize_openai_output,
}


def get_analyzer(name: str) -> Analyzer:
    try:
        return ANALYZERS[name]()
    except KeyError:
        raise AnalyzerError(f"Unknown analyzer: {name}") from None


def build_analyzers(mode: AnalysisMode | str) -> list[Analyzer]:
    """Analyzers configured for a session mode."""
    if AnalysisMode(mode) is AnalysisMode.MULTI:
        names = settings.multi_model_analyzers
    else:
        names = [settings.primary_analyzer]
    return [get_analyzer(name) for name in names]


def normalize_output(output: AnalyzerOutput, persona: Persona | str) -> NormalizedFeedback:
    normalizer = NORMALIZERS.get(output.analyzer, normalize_claude_output)
    return normalizer(output, persona)


__all__ = [
    "Analyzer",
    "AnalyzerError",
    "AnalyzerOutput",
    "AnalyzerRequest",
    "FeedbackItem",
    "MalformedAnalyzerOutput",
    "NormalizedFeedback",
    "ClaudeAnalyzer",
    "OpenAIAnalyzer",
    "build_analyzers",
    "get_analyzer",
    "normalize_output",
]
