"""
Flow Builder - Configuration Settings
Environment, logging, import limits and flow defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flow Builder settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Runtime ───────────────────────────────────────────────────────
    environment: str = Field(default="dev", alias="FLOWBUILDER_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_allowed_origins: str = Field(default="*", alias="CORS_ALLOWED_ORIGINS")

    # ── Import ────────────────────────────────────────────────────────
    max_import_bytes: int = Field(default=5 * 1024 * 1024, alias="MAX_IMPORT_BYTES")

    # ── Flow Defaults ─────────────────────────────────────────────────
    default_flow_name: str = Field(default="My New Automation", alias="DEFAULT_FLOW_NAME")
    imported_flow_name: str = Field(default="Imported Flow", alias="IMPORTED_FLOW_NAME")
    default_llm_model: str = Field(default="nvidia/nemotron-nano-9b-v2:free", alias="DEFAULT_LLM_MODEL")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["dev", "development", "qa", "test", "prod"]
        if v.lower() not in allowed:
            print(f"[SETTINGS] Warning: environment '{v}' not in {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def cors_origins(self) -> list:
        raw = self.cors_allowed_origins.strip()
        if raw == "*":
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]


settings = Settings()
