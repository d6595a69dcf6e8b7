from pydantic_settings import BaseSettings, SettingsConfigDict

from qz_utils.logger_utils import logger


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- Core App Settings ---
    FLASK_ENV: str = "production"
    SECRET_KEY: str
    DEBUG: bool = False

    # --- Infrastructure ---
    MONGO_URI: str  # database name is part of the URI, e.g. mongodb://host:27017/quiz-portal

    # --- Security ---
    SESSION_COOKIE_SECURE: bool = True
    SESSION_COOKIE_HTTPONLY: bool = True
    SESSION_COOKIE_SAMESITE: str = 'Lax'
    CORS_ORIGINS: str = "http://localhost:3000"  # comma separated

    # --- Users ---
    ADMIN_EMAIL: str = ""
    MIN_PASSWORD_LENGTH: int = 6

    # --- Quiz taking ---
    ENFORCE_TIME_LIMIT: bool = True
    TIME_LIMIT_GRACE_SECONDS: int = 30
    ATTEMPT_SAVE_RETRIES: int = 5

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Load settings
settings = Settings()

# Production readiness checks
if settings.FLASK_ENV == "production":
    if not settings.SECRET_KEY or settings.SECRET_KEY == "change-this-to-a-very-secret-key-in-production":
        raise ValueError("CRITICAL: SECRET_KEY is not set for production.")
    if settings.DEBUG:
        raise ValueError("CRITICAL: DEBUG mode must be disabled in production.")
    if not settings.ADMIN_EMAIL:
        logger.warning("ADMIN_EMAIL is not set. No account will be promoted to admin on signup.")
