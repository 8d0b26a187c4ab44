from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    api_key: str = ""  # empty = no auth check (local dev)

    openai_api_key: str = ""
    openai_model: str = "gpt-4.1"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    google_vision_api_key: str = ""
    vision_api_url: str = "https://vision.googleapis.com/v1/images:annotate"

    classifier_timeout_seconds: float = 15.0
    analyzer_timeout_seconds: float = 120.0
    analyzer_max_attempts: int = 2
    analyzer_retry_delay_seconds: float = 1.0

    # single mode uses primary_analyzer, multi mode fans out to every entry
    primary_analyzer: str = "claude"
    multi_model_analyzers: list[str] = ["claude", "openai"]

    stalled_session_minutes: int = 10
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
