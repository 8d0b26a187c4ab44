from critique.models.session import Session
from critique.models.image import Image
from critique.models.analysis import AnalysisResult
from critique.models.status import SessionStatus
from critique.models.persona import Persona, AnalysisMode

__all__ = ["Session", "Image", "AnalysisResult", "SessionStatus", "Persona", "AnalysisMode"]
