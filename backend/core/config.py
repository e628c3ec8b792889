from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Points Economy API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Security settings (tokens are issued by the external auth service)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # Database settings (MySQL in production, SQLite for local runs)
    DATABASE_URL: str = "sqlite+aiosqlite:///./points.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_POOL_TIMEOUT: int = 10
    DB_PRE_PING: bool = True
    DB_CONNECT_TIMEOUT: int = 10

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:8080",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    # Leaderboard
    LEADERBOARD_SIZE: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()

# Validate required settings
if not settings.SECRET_KEY:
    raise ValueError("SECRET_KEY environment variable is required")

if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required")
