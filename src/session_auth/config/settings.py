"""Configuration Settings for Session Auth Service

Manages environment variables and application configuration.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "session-auth-service"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Identity backend: "local" (self-hosted, Redis) or "remote" (managed REST API)
    identity_backend: str = "local"
    identity_api_url: str = "https://identitytoolkit.googleapis.com/v1"
    identity_api_key: Optional[str] = None
    idp_request_uri: str = "http://localhost"
    token_api_url: str = "https://securetoken.googleapis.com/v1"

    # Local backend
    local_secret_key: str = "dev-secret-change-in-production"
    local_algorithm: str = "HS256"
    local_token_expire_minutes: int = 60

    # Session behaviour
    app_id: str = "default"
    session_cache: str = "redis"  # redis or memory
    exchange_timeout_seconds: float = 15.0
    nonce_ttl_seconds: int = 600  # 10 minutes
    password_min_length: int = 6

    # CORS configuration
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()
