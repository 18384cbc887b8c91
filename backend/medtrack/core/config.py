"""Module: config."""

from pydantic_settings import BaseSettings

# Centralized runtime configuration loaded from environment variables.
class Settings(BaseSettings):
    # SQLAlchemy connection string for the web tier's own session store.
    database_url: str = "sqlite:///./medtrack_web.db"
    # Base URL of the MedTrack REST backend (all entity and auth calls go here).
    medtrack_api_base_url: str = "http://localhost:8080/api"
    backend_timeout_seconds: float = 10.0

    # Browser session cookie.
    session_cookie_name: str = "medtrack_sid"
    session_cookie_secure: bool = False
    # Stored sessions untouched for longer are purged; keep above the backend token lifetime.
    session_max_age_hours: int = 24

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    log_level: str = "INFO"
    # Unauthenticated entry point handed back to the browser on 401.
    login_path: str = "/login"

    # Configure pydantic-settings to also load values from local .env file.
    class Config:
        env_file = ".env"

# Global settings instance imported by app modules at runtime.
settings = Settings()
