"""Configuration settings for the face score service."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        MIN_QUALITY: Minimum embedding quality accepted by the feature validator
        SCORE_VALIDITY_DAYS: Days during which an existing score blocks resubmission
        EXTRACTION_FAILURE_THRESHOLD: Consecutive backend failures before the
            extraction client stops calling the backend
        DATABASE_URL: SQLAlchemy async URL; empty keeps the population in memory
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        env_nested_delimiter="__"
    )

    # Core Settings
    PROJECT_NAME: str = "Face Score Service"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> List[str]:
        """Get list of allowed origins."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Feature quality floors (0-1)
    MIN_QUALITY: float = 0.6
    MIN_FRONTALITY: float = 0.5
    MIN_SYMMETRY: float = 0.4
    MIN_RESOLUTION: float = 0.4
    MIN_CONFIDENCE: float = 0.7

    # Submission Settings
    EMBEDDING_DIM: int = 512
    MAX_IMAGE_BYTES: int = 2 * 1024 * 1024  # ~2MB encoded
    SCORE_VALIDITY_DAYS: int = 30
    REQUIRE_NFT_VERIFICATION: bool = False
    REQUIRE_IDENTITY_VERIFICATION: bool = False

    # Extraction backend Settings
    FACE_DETECTION_URL: str = "http://localhost:8001"
    FACE_EMBEDDING_URL: str = "http://localhost:8002"
    EXTRACTION_TIMEOUT_SECONDS: float = 5.0
    EXTRACTION_MAX_ATTEMPTS: int = 3
    EXTRACTION_BACKOFF_BASE_SECONDS: float = 1.0
    EXTRACTION_BACKOFF_MAX_SECONDS: float = 5.0
    EXTRACTION_FAILURE_THRESHOLD: int = 3
    EXTRACTION_RECOVERY_SECONDS: float = 30.0
    EXTRACTION_FALLBACK_ENABLED: bool = True

    # Population Settings
    DATABASE_URL: str = ""
    CONFIDENCE_FULL_POPULATION: int = 1000  # Population size at which percentiles are fully trusted
    MAX_LEADERBOARD_SIZE: int = 100
    MAX_SIMILAR_USERS: int = 50

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()
