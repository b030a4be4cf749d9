from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    # Database configuration
    DATABASE_URL: str = "sqlite:///./fintrack.db"  # PostgreSQL URLs work too

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # External AI model (Ollama-compatible /api/generate endpoint)
    AI_ENABLED: bool = True
    OLLAMA_URL: str = "http://ollama:11434"
    OLLAMA_MODEL: str = "mistral"
    AI_API_KEY: Optional[str] = None  # Sent as a bearer token when the endpoint sits behind a gateway
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_TEMPERATURE: float = 0.1

    # Spending trend classification: relative month-over-month change
    TREND_THRESHOLD: float = 0.05

    # Rate limiting for user-triggered AI endpoints
    RATE_LIMIT_ENABLED: bool = True
    AI_RATE_LIMIT: str = "30/minute"

    @field_validator("TREND_THRESHOLD")
    @classmethod
    def _validate_trend_threshold(cls, value):
        if value < 0 or value >= 1:
            raise ValueError("TREND_THRESHOLD must be a fraction in [0, 1)")
        return value

    @field_validator("AI_TIMEOUT_SECONDS")
    @classmethod
    def _validate_timeout(cls, value):
        if value <= 0:
            raise ValueError("AI_TIMEOUT_SECONDS must be positive")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        if value is None:
            return "INFO"
        return str(value).strip().upper() or "INFO"

    @field_validator("OLLAMA_URL")
    @classmethod
    def _strip_trailing_slash(cls, value):
        return value.rstrip("/")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables not defined in the model


settings = Settings()
