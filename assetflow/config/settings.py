"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Store backend: "mongo" or "memory"
    store_backend: str = "mongo"

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "assetflow_dev"
    # Multi-document transactions need a replica set
    mongo_use_transactions: bool = False

    # Store access
    store_timeout_seconds: float = 5.0

    # Engine
    engine_conflict_retries: int = 3
    audit_delivery_attempts: int = 3

    # Lifecycle policy
    require_onboarding_approval: bool = True
    approver_roles: str = "approver,admin"
    allow_self_approval: bool = False

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # API server (run.py)
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def approver_roles_list(self) -> List[str]:
        """Parse approver roles string to list"""
        return [role.strip().lower() for role in self.approver_roles.split(",") if role.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
