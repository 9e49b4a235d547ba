"""
envflow - Configuration Settings
Repository location, environment topology, deploy platforms and credentials.

Values come from a local ``.env`` file first, then the process environment,
then the defaults below.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


DEFAULT_ENVIRONMENTS: List[Dict[str, Any]] = [
    {
        "name": "beta",
        "branch": "beta",
        "label": "BETA (staging)",
        "services": {"render": "cicd-demo-backend-beta"},
        "urls": {"render": "https://cicd-demo-backend-beta.onrender.com"},
    },
    {
        "name": "gamma",
        "branch": "gamma",
        "label": "GAMMA (pre-production)",
        "services": {"render": "cicd-demo-backend-gamma"},
        "urls": {"render": "https://cicd-demo-backend-gamma.onrender.com"},
    },
    {
        "name": "prod",
        "branch": "prod",
        "label": "PRODUCTION",
        "production": True,
        "services": {"render": "cicd-demo-backend-prod"},
        "urls": {"render": "https://cicd-demo-backend-prod.onrender.com"},
    },
]

DEFAULT_ALIASES: Dict[str, str] = {"production": "prod", "main": "prod"}


class Settings(BaseSettings):
    """envflow settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Repository ────────────────────────────────────────────────────
    repo_path: str = Field(default=".", alias="ENVFLOW_REPO_PATH")
    remote: str = Field(default="origin", alias="ENVFLOW_REMOTE")
    git_timeout_seconds: int = Field(default=300, alias="ENVFLOW_GIT_TIMEOUT_SECONDS")

    # ── Environment topology ──────────────────────────────────────────
    environments: List[Dict[str, Any]] = Field(
        default_factory=lambda: [dict(e) for e in DEFAULT_ENVIRONMENTS],
        alias="ENVFLOW_ENVIRONMENTS",
    )
    aliases: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ALIASES), alias="ENVFLOW_ALIASES",
    )
    preview_service_template: str = Field(
        default="cicd-demo-backend-{name}", alias="ENVFLOW_PREVIEW_SERVICE_TEMPLATE",
    )
    preview_url_template: str = Field(
        default="https://cicd-demo-backend-{name}.onrender.com", alias="ENVFLOW_PREVIEW_URL_TEMPLATE",
    )

    # ── Deploy behaviour ──────────────────────────────────────────────
    deploy_platforms: List[str] = Field(
        default_factory=lambda: ["vercel", "render"], alias="ENVFLOW_DEPLOY_PLATFORMS",
    )
    deploy_wait: bool = Field(default=True, alias="ENVFLOW_DEPLOY_WAIT")
    deploy_timeout_seconds: int = Field(default=900, alias="ENVFLOW_DEPLOY_TIMEOUT_SECONDS")
    deploy_poll_interval_seconds: float = Field(default=5.0, alias="ENVFLOW_DEPLOY_POLL_INTERVAL")

    # ── Network retries (gateway boundary only) ───────────────────────
    network_retries: int = Field(default=3, alias="ENVFLOW_NETWORK_RETRIES")
    retry_delay_seconds: float = Field(default=1.0, alias="ENVFLOW_RETRY_DELAY_SECONDS")

    # ── Vercel (frontend) ─────────────────────────────────────────────
    vercel_token: Optional[str] = Field(default=None, alias="VERCEL_TOKEN")
    vercel_frontend_dir: str = Field(default="frontend", alias="ENVFLOW_FRONTEND_DIR")
    vercel_interactive_login: bool = Field(default=True, alias="ENVFLOW_VERCEL_INTERACTIVE_LOGIN")

    # ── Render (backend) ──────────────────────────────────────────────
    render_api_key: Optional[str] = Field(default=None, alias="RENDER_API_KEY")
    render_api_url: str = Field(default="https://api.render.com/v1", alias="RENDER_API_URL")

    # ── Logging ───────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="ENVFLOW_LOG_LEVEL")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Local config file wins over the process environment.
        return init_settings, dotenv_settings, env_settings, file_secret_settings

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log level '{v}' not in {allowed}")
        return v.upper()

    @field_validator("network_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("network retries cannot be negative")
        return v

    @field_validator("deploy_platforms")
    @classmethod
    def validate_platforms(cls, v: List[str]) -> List[str]:
        return [p.strip().lower() for p in v if p.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
