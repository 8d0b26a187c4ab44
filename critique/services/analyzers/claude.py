import logging
import time

from anthropic import AsyncAnthropic

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

MAX_TOKENS = 4000


def normalize_claude_output(output: AnalyzerOutput, persona: Persona | str) -> NormalizedFeedback:
    """Claude answers with percent coordinates under ``annotations`` and
    free-form ``visualObservations``."""
    payload = output.payload if output.payload is not None else extract_json(output.content or "")
    annotations = payload.get("annotations", []) if isinstance(payload, dict) else []
    return normalize_payload(
        output,
        persona,
        payload,
        annotations,
        extra_issue_keys=("visualObservations", "empathyGaps", "businessRisks"),
    )


class ClaudeAnalyzer(Analyzer):
    name = "claude"

    def __init__(self, api_key: str | None = None, model: str | None = None, client: AsyncAnthropic | None = None):
        self._api_key = settings.anthropic_api_key if api_key is None else api_key
        self._model = model or settings.anthropic_model
        self._client = client

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self._api_key:
                raise AnalyzerError("ANTHROPIC_API_KEY not configured")
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def analyze(self, request: AnalyzerRequest) -> AnalyzerOutput:
        client = self._get_client()

        content: list[dict] = [{"type": "text", "text": request.prompt.user_prompt}]
        for url in request.image_urls:
            content.append({"type": "image", "source": {"type": "url", "url": url}})

        temperature = request.prompt.metadata.get("temperature", 0.7)
        logger.info("Calling Claude model=%s with %d images", self._model, len(request.image_urls))

        start = time.monotonic()
        response = await client.messages.create(
            model=self._model,
            max_tokens=MAX_TOKENS,
            temperature=temperature,
            system=request.prompt.system_message,
            messages=[{"role": "user", "content": content}],
        )
        duration_ms = (time.monotonic() - start) * 1000

        raw_text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        if not raw_text.strip():
            raise AnalyzerError("Claude returned no content")
        logger.info("Claude raw response (%d chars): %s", len(raw_text), raw_text[:500])

        return AnalyzerOutput(
            analyzer=self.name,
            model=getattr(response, "model", None) or self._model,
            content=raw_text,
            payload=extract_json(raw_text),
            duration_ms=duration_ms,
            metadata={
                "stopReason": getattr(response, "stop_reason", None),
                "imageCount": len(request.image_urls),
            },
        )

    def normalize(self, output: AnalyzerOutput, persona: Persona | str) -> NormalizedFeedback:
        return normalize_claude_output(output, persona)
