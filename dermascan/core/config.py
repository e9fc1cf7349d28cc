"""
Application configuration settings with local-client defaults.
"""
from pydantic_settings import BaseSettings
from pydantic import Field, AnyHttpUrl
from pathlib import Path
from typing import List, Optional, Union
from functools import lru_cache

class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = Field("DermaScan", description="Name of the application")
    DEBUG: bool = Field(False, description="Enable debug mode")
    ENVIRONMENT: str = Field("production", description="Runtime environment (e.g., development, production)")

    # Server settings
    HOST: str = Field("127.0.0.1", description="Host to bind the client server to")
    PORT: int = Field(8000, description="Port to run the client server on")
    API_PREFIX: str = Field("/api", description="API prefix for all routes")
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = Field(
        ["*"],
        description="List of origins allowed to make cross-origin requests"
    )

    # Local storage settings
    STORAGE_DIR: Path = Field(
        default_factory=lambda: Path("data").absolute(),
        description="Directory holding the local key-value storage file"
    )
    HISTORY_FILE: str = Field("local_storage.json", description="Name of the local storage file")
    HISTORY_SLOT: str = Field("derma_history", description="Storage slot holding the scan history")
    HISTORY_LIMIT: int = Field(5, description="Number of past scans kept in history")

    # Capture settings
    CAMERA_INDEX: int = Field(0, description="OpenCV index of the user-facing camera")
    JPEG_QUALITY: int = Field(80, description="JPEG quality used for captured snapshots")
    MAX_UPLOAD_SIZE: int = Field(
        5 * 1024 * 1024,  # 5MB
        description="Maximum size of an uploaded snapshot in bytes"
    )

    # Gemini API settings
    GEMINI_API_KEY: str = Field(
        "",
        description="Google Gemini API key used for analysis and chat"
    )
    GEMINI_MODEL: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model used for analysis and chat"
    )

    LOG_FILE: Optional[str] = Field("app.log", description="Log file path, empty to log to stderr only")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env file

    @property
    def history_path(self) -> Path:
        return self.STORAGE_DIR / self.HISTORY_FILE

@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings, cached for performance.
    """
    return Settings()


settings = get_settings()
