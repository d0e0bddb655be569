# settings.py
import os
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "Printalma Backend"
    API_V1_PREFIX: str = "/api"

    # Security
    JWT_SECRET: str = os.getenv("JWT_SECRET", "super-secret-key")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 60 * 24  # 24h

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./dev.db"  # default local SQLite
    )

    # Brevo transactional email
    BREVO_API_KEY: str = os.getenv("BREVO_API_KEY", "")
    BREVO_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    EMAIL_SENDER: str = os.getenv("EMAIL_SENDER", "")
    EMAIL_SENDER_NAME: str = "Printalma"
    MAIL_HTTP_TIMEOUT: float = 20.0

    # Frontend URL (CORS + links in emails)
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    class Config:
        env_file = ".env"
        case_sensitive = True


# ✅ Instantiate settings globally
settings = Settings()
