"""
Core configuration module for the user service.
Handles environment variables and application settings.
"""

from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # Service Settings
    PROJECT_NAME: str = "User Service"
    SERVICE_NAME: str = "user-service"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # HTTP / TCP Settings
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    TCP_ENABLED: bool = True
    TCP_HOST: str = "0.0.0.0"
    TCP_PORT: Optional[int] = None  # Defaults to PORT + 1000

    # Database Settings
    DB_TYPE: str = "mysql"  # Options: mysql, sqlite
    MYSQL_HOST: str = "localhost"
    MYSQL_PORT: int = 3306
    MYSQL_USER: str = "user"
    MYSQL_PASSWORD: str = "password"
    MYSQL_DB: str = "user_service_db"
    SQLITE_DB: str = "user_service.db"
    DATABASE_URL: Optional[str] = None  # Overrides the URL derived from DB_TYPE
    DB_ECHO: bool = False
    DB_AUTO_CREATE: bool = True

    # Redis Settings
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    CACHE_ENABLED: bool = False
    USER_CACHE_EXPIRE: int = 3600  # seconds

    model_config = ConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the configured database."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_TYPE == "sqlite":
            return f"sqlite:///{self.SQLITE_DB}"
        if self.DB_TYPE == "mysql":
            return (
                f"mysql+pymysql://{self.MYSQL_USER}:{self.MYSQL_PASSWORD}@"
                f"{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}"
            )
        raise ValueError(f"Unsupported DB_TYPE: {self.DB_TYPE}")

    @property
    def tcp_port(self) -> int:
        """Port of the message-pattern listener."""
        return self.TCP_PORT if self.TCP_PORT is not None else self.PORT + 1000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Export settings instance
settings = get_settings()
