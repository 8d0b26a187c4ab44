from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from critique.dependencies import get_analyzer_lookup, get_classifier
from critique.main import app
from critique.services.analyzers import AnalyzerError

from fakes import CLARITY_PAYLOAD, FakeAnalyzer, FakeClassifier


@pytest.fixture
def overrides():
    yield app.dependency_overrides
    app.dependency_overrides.clear()


def _lookup(*analyzers):
    by_name = {a.name: a for a in analyzers}

    def lookup(name):
        if name not in by_name:
            raise AnalyzerError(f"Unknown analyzer: {name}")
        return by_name[name]
    return lookup


async def _post(path, body):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post(f"/api/v1/stages{path}", json=body)


@pytest.mark.asyncio
async def test_classify_success(overrides):
    overrides[get_classifier] = lambda: FakeClassifier()

    response = await _post("/classify", {"imageUrl": "https://img.example.com/a.png", "order": 0})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["screenType"] == "dashboard"
    assert body["confidence"] == pytest.approx(0.92)
    assert body["metadata"]["labels"] == ["Web page"]


@pytest.mark.asyncio
async def test_classify_failure_returns_fallback(overrides):
    overrides[get_classifier] = lambda: FakeClassifier(fail_orders={4})

    response = await _post("/classify", {"imageUrl": "https://img.example.com/a.png", "order": 4})

    body = response.json()
    assert body["success"] is False
    assert "500" in body["error"]
    assert body["fallback"]["screenType"] == "interface"
    assert body["fallback"]["confidence"] == 0.0


@pytest.mark.asyncio
async def test_prompt_stage():
    response = await _post("/prompt", {
        "persona": "mad",
        "mode": "single",
        "goal": "Increase signups",
        "confidence": 1,
        "screenTypes": ["signup", "interface"],
    })

    assert response.status_code == 200
    body = response.json()
    assert "Increase signups" in body["prompt"]
    assert 'Image 0: detected as "signup"' in body["prompt"]
    assert "Image 1: unknown screen type" in body["prompt"]
    assert body["systemMessage"]
    assert body["metadata"]["persona"] == "mad"


@pytest.mark.asyncio
async def test_prompt_stage_rejects_unknown_persona():
    response = await _post("/prompt", {"persona": "grumpy", "goal": "x"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_analyze_stage(overrides):
    analyzer = FakeAnalyzer(name="claude")
    overrides[get_analyzer_lookup] = lambda: _lookup(analyzer)

    response = await _post("/analyze/claude", {
        "prompt": "Review this",
        "systemMessage": "You are Clarity.",
        "imageUrls": ["https://img.example.com/a.png"],
        "persona": "clarity",
        "metadata": {"temperature": 0.3},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["result"]["analysis"] == CLARITY_PAYLOAD["analysis"]
    assert body["metadata"]["model"] == "claude-test"
    sent = analyzer.requests[0]
    assert sent.prompt.system_message == "You are Clarity."
    assert sent.image_urls == ["https://img.example.com/a.png"]


@pytest.mark.asyncio
async def test_analyze_stage_unknown_analyzer(overrides):
    overrides[get_analyzer_lookup] = lambda: _lookup()

    response = await _post("/analyze/gemini", {
        "prompt": "Review this", "imageUrls": ["https://img.example.com/a.png"], "persona": "clarity",
    })

    assert response.status_code == 404
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_analyze_stage_backend_error_is_masked(overrides):
    failing = FakeAnalyzer(name="openai", errors=[RuntimeError("Incorrect API key sk-abc123")])
    overrides[get_analyzer_lookup] = lambda: _lookup(failing)

    response = await _post("/analyze/openai", {
        "prompt": "Review this", "imageUrls": ["https://img.example.com/a.png"], "persona": "exec",
    })

    assert response.status_code == 502
    assert "sk-abc123" not in response.json()["message"]


@pytest.mark.asyncio
async def test_synthesize_stage():
    annotation = {"x": 50, "y": 50, "severity": "medium", "category": "readability", "description": "Dense copy"}
    response = await _post("/synthesize", {
        "analyzerResults": [
            {"analyzer": "claude", "model": "claude-test", "payload": {"analysis": "A", "annotations": [annotation]}},
            {"analyzer": "openai", "model": "gpt-test", "content": '{"analysis": "B", "annotations": []}'},
        ],
        "screenDetections": [{"screenType": "product", "confidence": 0.7, "imageId": "img-1"}],
        "persona": "clarity",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["annotations"][0]["zone"] == "middle-center"
    assert body["annotations"][0]["agreement"] == 0.5
    assert body["metadata"]["modelsUsed"] == ["claude-test", "gpt-test"]
    assert set(body["priorities"]) == {"works", "hurts", "next"}
    assert body["personaScore"] in ("low", "medium", "rage-cranked")
    assert body["degraded"] is False


@pytest.mark.asyncio
async def test_synthesize_stage_needs_results():
    response = await _post("/synthesize", {"analyzerResults": [], "persona": "clarity"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_analyze_stage_timeout(overrides):
    slow = FakeAnalyzer(name="claude", delay=1.0)
    overrides[get_analyzer_lookup] = lambda: _lookup(slow)

    with patch("critique.routers.stages.settings") as mock_settings:
        mock_settings.analyzer_timeout_seconds = 0.05
        response = await _post("/analyze/claude", {
            "prompt": "Review this", "imageUrls": ["https://img.example.com/a.png"], "persona": "clarity",
        })

    assert response.status_code == 504
