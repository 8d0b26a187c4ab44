import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from critique.models.persona import Persona
from critique.services.analyzers import (
    AnalyzerError,
    AnalyzerOutput,
    AnalyzerRequest,
    ClaudeAnalyzer,
    MalformedAnalyzerOutput,
    OpenAIAnalyzer,
    build_analyzers,
    get_analyzer,
)
from critique.services.analyzers.base import extract_json, infer_category, normalize_severity
from critique.services.analyzers.claude import normalize_claude_output
from critique.services.analyzers.gpt import _build_api_kwargs, normalize_openai_output
from critique.services.prompt_builder import BuiltPrompt


def _request(urls=("https://images.example.com/0.png",)):
    return AnalyzerRequest(
        prompt=BuiltPrompt("You are Clarity.", "Review this screen.", {"temperature": 0.3}),
        image_urls=list(urls),
        persona=Persona.CLARITY,
    )


def test_extract_json_handles_code_fences_and_chatter():
    assert extract_json('```json\n{"analysis": "ok"}\n```') == {"analysis": "ok"}
    assert extract_json('Sure! Here it is: {"analysis": "ok"} Hope it helps') == {"analysis": "ok"}
    assert extract_json("no json here") is None
    assert extract_json("[1, 2]") is None


def test_normalize_severity_and_category():
    assert normalize_severity("Major") == "high"
    assert normalize_severity("blocker") == "critical"
    assert normalize_severity(None) == "medium"
    assert normalize_severity("whatever") == "medium"
    assert infer_category("The menu is hidden") == "navigation"
    assert infer_category("Something odd", declared="Conversion") == "conversion"
    assert infer_category("Something odd") == "usability"


def test_normalize_claude_output():
    payload = {
        "analysis": "Busy header.",
        "annotations": [
            {"x": 10, "y": 90, "severity": "critical", "category": "conversion", "description": "CTA below fold"},
            {"x": "bad", "y": 5, "description": "No usable position"},
            {"description": ""},
        ],
        "visualObservations": ["Low contrast footer text"],
        "strengths": ["Consistent spacing"],
        "recommendations": ["Raise the CTA"],
        "biggestGripe": "Where is the button?",
    }
    output = AnalyzerOutput(analyzer="claude", model="claude-test", content=json.dumps(payload), payload=payload)

    feedback = normalize_claude_output(output, Persona.CLARITY)

    assert feedback.analysis == "Busy header."
    assert feedback.fields == {"biggestGripe": "Where is the button?"}
    located = [i for i in feedback.items if i.has_coordinates]
    assert len(located) == 1
    assert (located[0].x, located[0].y, located[0].severity) == (10.0, 90.0, "critical")
    kinds = sorted(i.kind for i in feedback.items)
    assert kinds == ["issue", "issue", "issue", "recommendation", "strength"]


def test_normalize_claude_output_parses_content_when_payload_missing():
    output = AnalyzerOutput(analyzer="claude", model="m", content='```\n{"analysis": "Fine"}\n```')
    assert normalize_claude_output(output, "clarity").analysis == "Fine"


def test_normalize_rejects_non_json():
    output = AnalyzerOutput(analyzer="claude", model="m", content="just prose")
    with pytest.raises(MalformedAnalyzerOutput):
        normalize_claude_output(output, "clarity")


def test_normalize_openai_output_nested_fractional_coordinates():
    payload = {
        "analysis": "Checkout feels long.",
        "issues": [
            {"position": {"x": 0.5, "y": 0.9}, "priority": "high", "description": "Pay button is tiny"},
        ],
        "priorities": ["Shorten the form"],
    }
    output = AnalyzerOutput(analyzer="openai", model="gpt-test", content=json.dumps(payload), payload=payload)

    feedback = normalize_openai_output(output, Persona.STRATEGIC)

    issue = next(i for i in feedback.items if i.kind == "issue")
    assert (issue.x, issue.y) == (50.0, 90.0)
    assert issue.severity == "high"
    assert [i.text for i in feedback.items if i.kind == "recommendation"] == ["Shorten the form"]


def test_build_api_kwargs_for_reasoning_models():
    kwargs = _build_api_kwargs("o3", [], 0.3)
    assert "temperature" not in kwargs
    assert kwargs["max_completion_tokens"] == 8192
    assert _build_api_kwargs("gpt-4.1", [], 0.3)["temperature"] == 0.3


def test_get_analyzer():
    assert isinstance(get_analyzer("claude"), ClaudeAnalyzer)
    assert isinstance(get_analyzer("openai"), OpenAIAnalyzer)
    with pytest.raises(AnalyzerError):
        get_analyzer("gemini")


def test_build_analyzers_by_mode():
    with patch("critique.services.analyzers.settings") as mock_settings:
        mock_settings.primary_analyzer = "openai"
        mock_settings.multi_model_analyzers = ["claude", "openai"]
        assert [a.name for a in build_analyzers("single")] == ["openai"]
        assert [a.name for a in build_analyzers("multi")] == ["claude", "openai"]


@pytest.mark.asyncio
async def test_claude_analyzer_without_key():
    with pytest.raises(AnalyzerError):
        await ClaudeAnalyzer(api_key="").analyze(_request())


@pytest.mark.asyncio
async def test_claude_analyzer_sends_images_and_parses_reply():
    client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock(return_value=SimpleNamespace(
        content=[SimpleNamespace(type="text", text='{"analysis": "Looks tidy", "annotations": []}')],
        model="claude-test",
        stop_reason="end_turn",
    ))))

    output = await ClaudeAnalyzer(model="claude-test", client=client).analyze(_request())

    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["system"] == "You are Clarity."
    assert kwargs["temperature"] == 0.3
    blocks = kwargs["messages"][0]["content"]
    assert blocks[1] == {"type": "image", "source": {"type": "url", "url": "https://images.example.com/0.png"}}
    assert output.payload == {"analysis": "Looks tidy", "annotations": []}
    assert output.metadata["stopReason"] == "end_turn"


@pytest.mark.asyncio
async def test_claude_analyzer_empty_reply_is_an_error():
    client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock(return_value=SimpleNamespace(
        content=[], model="claude-test", stop_reason="end_turn",
    ))))
    with pytest.raises(AnalyzerError):
        await ClaudeAnalyzer(client=client).analyze(_request())


@pytest.mark.asyncio
async def test_openai_analyzer_caps_images():
    reply = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content='{"analysis": "ok"}'), finish_reason="stop")],
        model="gpt-test",
    )
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(return_value=reply))))
    urls = [f"https://images.example.com/{i}.png" for i in range(5)]

    output = await OpenAIAnalyzer(model="gpt-4.1", client=client).analyze(_request(urls))

    kwargs = client.chat.completions.create.call_args.kwargs
    user_content = kwargs["messages"][1]["content"]
    assert sum(1 for part in user_content if part["type"] == "image_url") == 3
    assert output.metadata["imageCount"] == 3
    assert output.model == "gpt-test"
