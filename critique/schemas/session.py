from pydantic import BaseModel, Field

from critique.models.persona import AnalysisMode, Persona


class SessionCreate(BaseModel):
    persona: Persona
    mode: AnalysisMode = AnalysisMode.SINGLE
    intent: str = ""
    goal_confidence: int | None = Field(default=None, ge=1, le=3)
    owner: str | None = None
    id: str | None = None


class SessionResponse(BaseModel):
    id: str
    owner: str | None = None
    persona: str
    mode: str
    intent: str
    goal_confidence: int | None = None
    status: str
    failed_stage: str | None = None
    error_message: str | None = None
    archived: bool
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class ImageCreate(BaseModel):
    url: str = Field(min_length=1)
    upload_order: int | None = Field(default=None, ge=0)
    file_name: str | None = None


class ImageResponse(BaseModel):
    id: str
    session_id: str
    url: str
    upload_order: int
    file_name: str | None = None
    screen_type: str | None = None
    confidence: float | None = None
    classification_error: str | None = None
    created_at: str

    model_config = {"from_attributes": True}
