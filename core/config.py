"""
Application configuration.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Project settings."""

    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")

    # Public base URL of the backend; gateway return/notify URLs are built from it
    APP_URL: str = Field(default="http://localhost:3000")
    # Storefront URL used where a gateway redirects the shopper directly
    FRONTEND_URL: str = Field(default="http://localhost:5173")

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @field_validator("APP_URL", "FRONTEND_URL")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return (v or "").rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return (v or "INFO").upper()


settings = Settings()
