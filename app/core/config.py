from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    # -------------------------
    # Core App Settings
    # -------------------------
    PROJECT_NAME: str = "Holy Rosary Pharmacy"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    API_PREFIX: str = "/api"

    # -------------------------
    # Security / Auth
    # -------------------------
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"

    # Tokens last a working day
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # -------------------------
    # Database
    # -------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///./pharmacy.db"
    ALEMBIC_DB_URL: Optional[str] = Field(default=None, validate_default=True)
    DB_ECHO: bool = False

    # -------------------------
    # Inventory
    # -------------------------
    DEFAULT_LOW_STOCK_THRESHOLD: int = 50
    DELEGATION_NOTIFICATION_LIMIT: int = 50

    # -------------------------
    # CORS
    # -------------------------
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    # -------------------------
    # Logging
    # -------------------------
    LOG_DIR: str = "logs"

    # -------------------------
    # Model config
    # -------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------
    # Validators
    # -------------------------
    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """
        Allows:
        CORS_ORIGINS='["http://localhost:3000", "http://localhost:5173"]'
        or
        CORS_ORIGINS=http://a.com,http://b.com
        """
        if v is None or v == "":
            return []
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [i.strip() for i in v.split(",")]
        return v

    @field_validator("ALEMBIC_DB_URL", mode="before")
    @classmethod
    def set_alembic_url(cls, v, info):
        if v:
            return v
        return info.data.get("DATABASE_URL")

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def access_token_expire_seconds(self) -> int:
        """Get access token expiry in seconds"""
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance for performance.
    Use: settings = get_settings()
    """
    return Settings()
