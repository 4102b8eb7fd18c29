from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # first load variables from env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = Field(default="Khata Marks Extraction API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    google_api_key: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    default_llm_provider: str = Field(default="gemini")
    gemini_model: str = Field(default="gemini-2.0-flash")
    openai_model: str = Field(default="gpt-4o")

    # intake limits
    max_images: int = Field(default=5)
    max_image_size_mb: int = Field(default=5)
    allowed_image_types: str = Field(default="jpg,jpeg,png,webp,pdf")

    # every AI call is raced against this timer (seconds)
    ai_timeout_seconds: float = Field(default=60.0)
    circuit_failure_threshold: int = Field(default=5)
    circuit_success_threshold: int = Field(default=2)
    circuit_reset_seconds: float = Field(default=60.0)

    rate_limit_requests: int = Field(default=10)

    roll_number_width: int = Field(default=2)
    max_total_marks: float = Field(default=100.0)

    # "memory" or "json"
    storage_backend: str = Field(default="memory")
    storage_dir: str = Field(default="data")

    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/app.log")

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024

    @property
    def allowed_image_types_list(self) -> List[str]:
        return [ext.strip().lower() for ext in self.allowed_image_types.split(",")]

    def validate_llm_config(self) -> bool:
        if self.default_llm_provider == "gemini" and not self.google_api_key:
            return False
        if self.default_llm_provider == "openai" and not self.openai_api_key:
            return False
        return True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# Global settings instance
settings = get_settings()
