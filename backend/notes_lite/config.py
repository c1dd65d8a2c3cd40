"""
Configuration management for the application.

Loads environment variables and provides centralized config access.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    DEBUG: bool = FLASK_ENV == "development"
    PORT: int = int(os.getenv("PORT", "4000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")

    # Request bodies are small JSON documents
    MAX_CONTENT_LENGTH: int = 1024 * 1024

    # Storage settings
    BASE_DIR: Path = Path(__file__).parent.parent
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", str(BASE_DIR / "data" / "notes.db")))

    # Note constraints
    DEFAULT_NOTE_COLOR: str = "#fde2e4"
    TITLE_MAX_LENGTH: int = 512
    BODY_MAX_LENGTH: int = 5000
    COLOR_PATTERN: str = r"^#[0-9A-Fa-f]{6}$"

    # Client settings
    API_BASE_URL: str = os.getenv("NOTES_API_BASE_URL", "http://localhost:4000")
    API_TIMEOUT: float = float(os.getenv("NOTES_API_TIMEOUT", "10"))

    @classmethod
    def allowed_origins(cls) -> list:
        """CORS origins used outside development."""
        origins = [
            "http://localhost:5173",  # Local Vite dev server
            "http://localhost:4173",  # Vite preview
        ]
        if cls.FRONTEND_URL:
            origins.append(cls.FRONTEND_URL)
        return origins


# Create config instance
config = Config()
