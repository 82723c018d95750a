from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field


class Settings(BaseSettings):
    # App Config
    PROJECT_NAME: str = "PrintMeta"
    ENVIRONMENT: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    # Upload Admission
    MAX_UPLOAD_MB: int = 100
    CONTAINER_EXTENSION: str = ".3mf"
    TOOLPATH_EXTENSION: str = ".gcode"

    @computed_field
    @property
    def MAX_UPLOAD_BYTES(self) -> int:
        """Byte ceiling applied before any parsing starts."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    # Material Defaults
    UNKNOWN_COLOR_LABEL: str = "Unknown"
    FALLBACK_COLOR_HEX: str = "#CCCCCC"
    COLOR_NAME_MAX_DELTA_E: float = 12.0

    # External Collaborators (Vision Fallback / Maker Tip)
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_VISION_MODEL: str = "gpt-4o"
    OPENAI_TIP_MODEL: str = "gpt-4o-mini"
    EXTERNAL_TIMEOUT_SECONDS: float = 60.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


# Globally accessible settings instance
settings = Settings()
