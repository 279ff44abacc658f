"""
Configuration settings for ExamPrep.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / '.env')


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGODB_URL: str = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DB_NAME", "examprep")

    # Attempt history
    ATTEMPT_STORE: str = os.environ.get("ATTEMPT_STORE", "memory")  # mongo, file, memory
    ATTEMPT_STORE_DIR: str = os.environ.get("ATTEMPT_STORE_DIR", str(ROOT_DIR / "data"))
    ATTEMPT_STORE_KEY: str = os.environ.get("ATTEMPT_STORE_KEY", "igcse_attempts")
    ANALYSIS_WINDOW: int = 10  # Most recent attempts sent for analysis

    # API Keys
    GEMINI_API_KEY: str = os.environ.get("GEMINI_API_KEY", "")
    GOOGLE_API_KEY: Optional[str] = os.environ.get("GOOGLE_API_KEY")
    LLM_API_KEY: str = GEMINI_API_KEY or GOOGLE_API_KEY or ""

    # Server
    PORT: int = int(os.environ.get("PORT", 8001))
    HOST: str = os.environ.get("HOST", "0.0.0.0")
    DEBUG: bool = os.environ.get("DEBUG", "False").lower() == "true"

    # AI Configuration
    GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
    LLM_TIMEOUT: int = int(os.environ.get("LLM_TIMEOUT", 120))  # seconds
    LLM_TEMPERATURE: float = 0.0  # Deterministic generation
    LLM_THINKING_BUDGET: int = 0  # No extended reasoning
    MAX_WORKERS: int = 5  # Concurrent oracle calls

    # Mock exams
    MCQ_DURATION_SECONDS: int = 600
    THEORY_DURATION_SECONDS: int = 1800
    PAPER_LENGTH: int = 10

    # Session registry
    SESSION_IDLE_TTL_SECONDS: int = int(os.environ.get("SESSION_IDLE_TTL_SECONDS", 3600))
    MAX_SESSIONS: int = int(os.environ.get("MAX_SESSIONS", 500))

    # File upload
    MAX_FILE_SIZE_MB: int = 10
    ALLOWED_IMAGE_EXTENSIONS: list = ["png", "jpg", "jpeg", "webp"]
    JPEG_QUALITY: int = 85  # Balance quality/size

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    def validate(self):
        """Validate critical settings."""
        if not self.LLM_API_KEY:
            raise ValueError("GEMINI_API_KEY or GOOGLE_API_KEY environment variable not set")
        if self.ATTEMPT_STORE not in ("mongo", "file", "memory"):
            raise ValueError(f"Unknown ATTEMPT_STORE '{self.ATTEMPT_STORE}'")
        if self.ATTEMPT_STORE == "mongo" and not self.MONGODB_URL:
            raise ValueError("MONGODB_URI environment variable not set")
        return True


# Global settings instance
settings = Settings()
