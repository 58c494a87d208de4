"""Application configuration settings."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings:
    """Uploader settings loaded from environment variables."""

    # Coordinator service (issues sessions and signed part URLs)
    COORDINATOR_URL: str = os.getenv("COORDINATOR_URL", "http://localhost:3000")
    COORDINATOR_API_PREFIX: str = os.getenv("COORDINATOR_API_PREFIX", "/api")

    # Upload pipeline
    UPLOAD_CONCURRENCY: int = int(os.getenv("UPLOAD_CONCURRENCY", "4"))
    UPLOAD_MAX_RETRIES: int = int(os.getenv("UPLOAD_MAX_RETRIES", "3"))
    UPLOAD_RETRY_BASE_DELAY: float = float(os.getenv("UPLOAD_RETRY_BASE_DELAY", "1.0"))  # seconds
    UPLOAD_RETRY_MAX_DELAY: float = float(os.getenv("UPLOAD_RETRY_MAX_DELAY", "10.0"))  # seconds
    UPLOAD_FILENAME_TEMPLATE: str = os.getenv("UPLOAD_FILENAME_TEMPLATE", "page_{index}.png")
    DEFAULT_MIME_TYPE: str = os.getenv("DEFAULT_MIME_TYPE", "image/png")

    # Timeout Configuration
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))

    # Credentials
    AUTH_TOKEN_ENV: str = os.getenv("AUTH_TOKEN_ENV", "DECKSHOT_AUTH_TOKEN")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
