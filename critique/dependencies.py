from fastapi import Header, HTTPException

from critique.config import settings
from critique.services.analyzers import get_analyzer
from critique.services.pipeline import AnalysisPipeline
from critique.services.screen_classifier import ScreenClassifier


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")


def get_classifier() -> ScreenClassifier:
    return ScreenClassifier()


def get_analyzer_lookup():
    return get_analyzer


def get_pipeline() -> AnalysisPipeline:
    return AnalysisPipeline()
