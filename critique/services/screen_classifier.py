"""Label each uploaded screenshot with a screen type using Google Vision.

Classification is best-effort: any failure (missing key, HTTP error,
timeout, malformed payload) produces a fallback detection instead of an
exception, so one bad image never blocks the rest of the session.
"""
import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from critique.config import settings

logger = logging.getLogger(__name__)

FALLBACK_SCREEN_TYPE = "interface"

# Checked in order; first match wins.
SCREEN_TEXT_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("login", ("sign in", "log in", "login")),
    ("signup", ("sign up", "register", "create account")),
    ("checkout", ("checkout", "payment", "billing")),
    ("dashboard", ("dashboard",)),
    ("onboarding", ("onboarding", "welcome", "get started")),
    ("profile", ("profile", "account", "settings")),
    ("product", ("product", "item", "buy")),
    ("search", ("search", "results", "filter")),
    ("cart", ("cart", "basket", "shopping")),
    ("contact", ("contact", "support", "help")),
]

CONFIDENCE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "login": ("sign in", "log in", "password", "username"),
    "signup": ("sign up", "register", "create account", "join"),
    "checkout": ("checkout", "payment", "billing", "total", "price"),
    "dashboard": ("dashboard", "overview", "analytics", "stats"),
    "onboarding": ("welcome", "get started", "step 1", "tutorial"),
    "profile": ("profile", "account", "settings", "preferences"),
    "product": ("product", "buy now", "add to cart", "price"),
    "search": ("search", "results", "filter", "sort by"),
    "cart": ("cart", "basket", "checkout", "remove item"),
    "contact": ("contact", "support", "help", "email us"),
}

MOBILE_LABELS = {"mobile phone", "smartphone"}
BASE_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95


class VisionError(Exception):
    pass


@dataclass
class ScreenDetection:
    order: int
    screen_type: str
    confidence: float
    labels: list[dict] = field(default_factory=list)
    detected_text: list[str] = field(default_factory=list)
    error: str | None = None
    image_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def metadata(self) -> dict:
        return {
            "labels": [label["description"] for label in self.labels],
            "topScores": [round(label["score"], 3) for label in self.labels[:5]],
            "detectedText": self.detected_text,
        }


def fallback_detection(order: int, error: str, image_id: str | None = None) -> ScreenDetection:
    return ScreenDetection(
        order=order,
        screen_type=FALLBACK_SCREEN_TYPE,
        confidence=0.0,
        error=error,
        image_id=image_id,
    )


def determine_screen_type(texts: list[str], labels: list[dict]) -> str:
    all_text = " ".join(texts).lower()
    label_names = {label["description"].lower() for label in labels}

    for screen_type, keywords in SCREEN_TEXT_RULES:
        if any(keyword in all_text for keyword in keywords):
            return screen_type
        if screen_type == "dashboard" and "dashboard" in label_names:
            return screen_type

    if label_names & MOBILE_LABELS:
        return "mobile_app"
    if len(texts) > 20:
        return "content_heavy"
    if len(texts) < 5:
        return "minimal"
    return "general"


def calculate_confidence(screen_type: str, texts: list[str], labels: list[dict]) -> float:
    confidence = BASE_CONFIDENCE
    all_text = " ".join(texts).lower()

    keywords = CONFIDENCE_KEYWORDS.get(screen_type, ())
    if keywords:
        matches = sum(1 for keyword in keywords if keyword in all_text)
        confidence += (matches / len(keywords)) * 0.5

    strong_labels = sum(1 for label in labels if label["score"] > 0.7)
    confidence += min(strong_labels / 10, 0.2)

    return round(min(confidence, MAX_CONFIDENCE), 4)


class ScreenClassifier:
    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = settings.google_vision_api_key if api_key is None else api_key
        self.api_url = api_url or settings.vision_api_url
        self.timeout = settings.classifier_timeout_seconds if timeout is None else timeout
        self._transport = transport

    async def classify(self, image_url: str, order: int, image_id: str | None = None) -> ScreenDetection:
        """Classify one image. Never raises."""
        try:
            detection = await asyncio.wait_for(self._detect(image_url, order), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Vision classification timed out for image %d after %.1fs", order, self.timeout)
            return fallback_detection(order, f"Vision call timed out after {self.timeout}s", image_id)
        except Exception as e:
            logger.warning("Vision classification failed for image %d: %s", order, e)
            return fallback_detection(order, str(e) or e.__class__.__name__, image_id)

        detection.image_id = image_id
        logger.info(
            "Image %d classified as %s (%.0f%% confidence)",
            order, detection.screen_type, detection.confidence * 100,
        )
        return detection

    async def _detect(self, image_url: str, order: int) -> ScreenDetection:
        if not self.api_key:
            raise VisionError("GOOGLE_VISION_API_KEY not configured")

        body = {
            "requests": [{
                "image": {"source": {"imageUri": image_url}},
                "features": [
                    {"type": "TEXT_DETECTION", "maxResults": 10},
                    {"type": "LABEL_DETECTION", "maxResults": 20},
                ],
            }]
        }
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(self.api_url, params={"key": self.api_key}, json=body)
        if response.status_code >= 400:
            raise VisionError(f"Vision API error: {response.status_code}")

        responses = response.json().get("responses") or []
        if not responses:
            raise VisionError("Vision API returned no annotations")
        annotation = responses[0]
        if "error" in annotation:
            raise VisionError(annotation["error"].get("message", "Vision API error"))

        texts = [t.get("description", "") for t in annotation.get("textAnnotations", [])]
        labels = [
            {"description": l.get("description", ""), "score": float(l.get("score", 0.0))}
            for l in annotation.get("labelAnnotations", [])
        ]

        screen_type = determine_screen_type(texts, labels)
        return ScreenDetection(
            order=order,
            screen_type=screen_type,
            confidence=calculate_confidence(screen_type, texts, labels),
            labels=labels[:10],
            detected_text=texts[:5],
        )
