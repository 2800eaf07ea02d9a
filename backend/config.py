from pathlib import Path

from pydantic_settings import BaseSettings


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./data/stratus.db"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Application
    APP_NAME: str = "Stratus"
    APP_VERSION: str = _load_version()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Cloud integration ───────────────────────────────────────────────
    CLOUD_ENABLED: bool = True  # Master switch; False disables discovery and polling
    CLOUD_API_TIMEOUT: float = 30.0
    CLOUD_SITES_PAGE_LIMIT: int = 1000

    # Scheduling
    POLL_INTERVAL_SECONDS: int = 0  # 0 = no background loop, trigger via API
    POLL_CONCURRENCY: int = 8
    DISCOVERY_CONCURRENCY: int = 4

    # Tenant management
    VALIDATE_ON_SAVE: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
