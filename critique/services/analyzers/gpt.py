import logging
import time

from openai import AsyncOpenAI

from critique.config import settings
from critique.models.persona import Persona
from critique.services.analyzers.base import (
    Analyzer,
    AnalyzerError,
    AnalyzerOutput,
    AnalyzerRequest,
    NormalizedFeedback,
    extract_json,
    normalize_payload,
)

logger = logging.getLogger(__name__)

# GPT only reliably attends to the first few screenshots
MAX_IMAGES = 3


def _build_api_kwargs(model: str, messages: list[dict], temperature: float) -> dict:
    """Build OpenAI API kwargs based on model type."""
    api_kwargs: dict = {
        "model": model,
        "messages": messages,
    }

    if model.startswith("o"):
        # o-series reasoning models: no temperature, max_completion_tokens
        api_kwargs["max_completion_tokens"] = 8192
    else:
        api_kwargs["max_tokens"] = 4000
        api_kwargs["temperature"] = temperature

    return api_kwargs


def _flatten_annotation(entry):
    """GPT nests coordinates under ``position`` or ``box`` more often than not."""
    if not isinstance(entry, dict):
        return entry
    nested = entry.get("position") or entry.get("box")
    if isinstance(nested, dict):
        entry = {**nested, **{k: v for k, v in entry.items() if k not in ("position", "box")}}
    return entry


def _coordinate_scale(annotations: list) -> float:
    """Fractions (0..1) across the whole reply mean the model ignored the percent instruction."""
    values = []
    for entry in annotations:
        if not isinstance(entry, dict):
            continue
        for key in ("x", "y"):
            value = entry.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                values.append(value)
    if values and all(0 <= v <= 1 for v in values) and any(v != 0 for v in values):
        return 100.0
    return 1.0


def normalize_openai_output(output: AnalyzerOutput, persona: Persona | str) -> NormalizedFeedback:
    payload = output.payload if output.payload is not None else extract_json(output.content or "")
    annotations = []
    if isinstance(payload, dict):
        raw = payload.get("annotations") or payload.get("issues") or []
        if isinstance(raw, list):
            annotations = [_flatten_annotation(entry) for entry in raw]
    return normalize_payload(
        output,
        persona,
        payload,
        annotations,
        coordinate_scale=_coordinate_scale(annotations),
        extra_issue_keys=("empathyGaps", "businessRisks"),
    )


class OpenAIAnalyzer(Analyzer):
    name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None, client: AsyncOpenAI | None = None):
        self._api_key = settings.openai_api_key if api_key is None else api_key
        self._model = model or settings.openai_model
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise AnalyzerError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def analyze(self, request: AnalyzerRequest) -> AnalyzerOutput:
        client = self._get_client()

        content: list[dict] = []
        for url in request.image_urls[:MAX_IMAGES]:
            content.append({"type": "image_url", "image_url": {"url": url, "detail": "high"}})
        content.append({"type": "text", "text": request.prompt.user_prompt})

        messages = [
            {"role": "system", "content": request.prompt.system_message},
            {"role": "user", "content": content},
        ]
        temperature = request.prompt.metadata.get("temperature", 0.7)
        api_kwargs = _build_api_kwargs(self._model, messages, temperature)
        logger.info("OpenAI request: model=%s, images=%d", self._model, len(content) - 1)

        start = time.monotonic()
        response = await client.chat.completions.create(**api_kwargs)
        duration_ms = (time.monotonic() - start) * 1000

        raw_text = response.choices[0].message.content or ""
        if not raw_text.strip():
            raise AnalyzerError("GPT returned no content")
        logger.info("OpenAI raw response (%d chars): %s", len(raw_text), raw_text[:500])

        return AnalyzerOutput(
            analyzer=self.name,
            model=getattr(response, "model", None) or self._model,
            content=raw_text,
            payload=extract_json(raw_text),
            duration_ms=duration_ms,
            metadata={
                "finishReason": response.choices[0].finish_reason,
                "imageCount": len(content) - 1,
            },
        )

    def normalize(self, output: AnalyzerOutput, persona: Persona | str) -> NormalizedFeedback:
        return normalize_openai_output(output, persona)
