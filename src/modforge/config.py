"""Configuration settings for modforge."""

from __future__ import annotations

import json

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or overrides."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, populate_by_name=True
    )

    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL"
    )
    openai_model: str = Field(default="gpt-4.1-mini", validation_alias="OPENAI_MODEL")
    openai_timeout_seconds: int = Field(
        default=120, validation_alias="OPENAI_TIMEOUT_SECONDS"
    )
    openai_extra_headers: str | None = Field(
        default=None, validation_alias="OPENAI_EXTRA_HEADERS"
    )
    openai_force_chatcompletions_path: str | None = Field(
        default=None, validation_alias="OPENAI_FORCE_CHATCOMPLETIONS_PATH"
    )
    openai_max_attempts: int = Field(default=3, validation_alias="OPENAI_MAX_ATTEMPTS")
    fail_on_truncation: bool = Field(
        default=False, validation_alias="MODFORGE_FAIL_ON_TRUNCATION"
    )
    output_dir: str = Field(default="modules", validation_alias="MODFORGE_OUTPUT_DIR")

    def extra_headers(self) -> dict[str, str]:
        """Decode OPENAI_EXTRA_HEADERS, a JSON object of header names to values."""
        if not self.openai_extra_headers:
            return {}
        try:
            payload = json.loads(self.openai_extra_headers)
        except json.JSONDecodeError as exc:
            raise ValueError("OPENAI_EXTRA_HEADERS must be a JSON object") from exc
        if not isinstance(payload, dict):
            raise ValueError("OPENAI_EXTRA_HEADERS must be a JSON object")
        return {str(key): str(value) for key, value in payload.items()}
