from sqlalchemy import Column, String, Integer, Float, ForeignKey, UniqueConstraint

from critique.database import Base


class Image(Base):
    __tablename__ = "images"
    __table_args__ = (UniqueConstraint("session_id", "upload_order", name="uq_images_session_order"),)

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("sessions.id"), nullable=False)
    url = Column(String, nullable=False)
    upload_order = Column(Integer, nullable=False)
    file_name = Column(String, nullable=True)
    screen_type = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)
    classification_error = Column(String, nullable=True)
    vision_metadata = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
