"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./room_chat.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Tokens are minted by the external auth provider; only the shared secret lives here.
    JWT_SECRET: str = "change-me-to-a-long-random-secret-value"
    JWT_ALGORITHM: str = "HS256"
    TOKEN_TTL_MINUTES: int = 60
    SESSION_COOKIE: str = "session_token"

    GROUP_ID_BYTES: int = 24
    MEMBERSHIP_WRITE_RETRIES: int = 2

    class Config:
        env_file = ".env"


settings = Settings()
