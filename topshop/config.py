from __future__ import annotations

from pydantic import AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_SCOPES = "read_products,write_products,read_content,write_content,read_themes,write_publications"


class Settings(BaseSettings):
    SHOPIFY_API_KEY: str
    SHOPIFY_API_SECRET: str
    SHOPIFY_APP_BASE_URL: AnyHttpUrl
    SHOPIFY_APP_SCOPES: str = _DEFAULT_SCOPES
    SHOPIFY_ADMIN_API_VERSION: str = "2023-10"
    SHOPIFY_FALLBACK_API_VERSION: str = "2023-07"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0
    SHOPIFY_REGISTER_WEBHOOKS: bool = True

    TOPSHOP_DB_URL: str = "sqlite:///./topshop.db"
    OAUTH_STATE_TTL_SECONDS: int = Field(default=3600, ge=60)
    POST_INSTALL_REDIRECT_PATH: str = "/embedded"
    BACKEND_CORS_ORIGINS: list[str] = Field(default_factory=list)
    ADMIN_API_TOKEN: str | None = None

    ANTHROPIC_API_KEY: str | None = None
    CLAUDE_MODEL: str = "claude-3-7-sonnet-20250219"
    CLAUDE_MAX_TOKENS: int = 8000
    CLAUDE_TIMEOUT_SECONDS: float = 120.0

    PEXELS_API_KEY: str | None = None
    PEXELS_TIMEOUT_SECONDS: float = 15.0

    DATAFORSEO_API_KEY: str | None = None
    DATAFORSEO_TIMEOUT_SECONDS: float = 30.0

    @field_validator("SHOPIFY_APP_SCOPES")
    @classmethod
    def validate_scopes(cls, value: str) -> str:
        scopes = [scope.strip() for scope in value.split(",") if scope.strip()]
        if not scopes:
            raise ValueError("SHOPIFY_APP_SCOPES must include at least one scope")
        return ",".join(scopes)

    @field_validator("ANTHROPIC_API_KEY", "PEXELS_API_KEY", "DATAFORSEO_API_KEY", "ADMIN_API_TOKEN")
    @classmethod
    def blank_as_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def validate_redirect_path(self) -> "Settings":
        if not self.POST_INSTALL_REDIRECT_PATH.startswith("/"):
            raise ValueError("POST_INSTALL_REDIRECT_PATH must start with '/'")
        return self

    @property
    def app_base_url(self) -> str:
        return str(self.SHOPIFY_APP_BASE_URL).rstrip("/")

    @property
    def oauth_callback_url(self) -> str:
        return f"{self.app_base_url}/shopify/callback"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
