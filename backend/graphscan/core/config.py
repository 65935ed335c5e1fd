# backend/graphscan/core/config.py
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the .env file relative to the repository root
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "GraphScan"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./graphscan.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Ingestion limits
    MAX_IDEMPOTENCY_KEY_LENGTH: int = 128
    MAX_WORKSPACE_ID_LENGTH: int = 128
    MAX_SCANNER_NAME_LENGTH: int = 128
    MAX_SCANNER_VERSION_LENGTH: int = 64

    # Finalize attempts when a concurrent ingestion takes the next version number
    FINALIZE_MAX_ATTEMPTS: int = 5

    # Scanner identity reported by the CLI tools
    SCANNER_NAME: str = "workspace-scanner"
    SCANNER_VERSION: str = "1.0.0"


settings = Settings()
