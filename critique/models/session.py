from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer
from sqlalchemy.orm import validates

from critique.database import Base
from critique.models.status import SessionStatus, ensure_transition


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Session(Base):
    __tablename__ = "sessions"

    id = Column(String, primary_key=True)
    owner = Column(String, nullable=True)
    persona = Column(String, nullable=False)
    mode = Column(String, nullable=False, default="single")
    intent = Column(String, nullable=False, default="")
    goal_confidence = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default=SessionStatus.DRAFT.value)
    failed_stage = Column(String, nullable=True)
    error_message = Column(String, nullable=True)
    archived = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False, default=utcnow_iso)
    updated_at = Column(String, nullable=False, default=utcnow_iso)

    @validates("status")
    def _validate_status(self, key, value):
        return ensure_transition(self.status, value).value

    def move_to(self, status: SessionStatus) -> None:
        self.status = status.value
        self.updated_at = utcnow_iso()
