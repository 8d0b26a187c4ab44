from sqlalchemy import Column, String, Integer, ForeignKey

from critique.database import Base


class AnalysisResult(Base):
    """One synthesized analysis run. Rows are insert-only; latest wins."""

    __tablename__ = "analysis_results"

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    persona_feedback = Column(String, nullable=False)
    synthesis_summary = Column(String, nullable=False)
    priority_matrix = Column(String, nullable=False)
    annotations = Column(String, nullable=False)
    model_metadata = Column(String, nullable=False)
    processing_time_ms = Column(Integer, nullable=False, default=0)
    persona_score = Column(String, nullable=True)
    degraded = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)
