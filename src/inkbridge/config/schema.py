"""
Pydantic configuration schema for InkBridge.

Every section has defaults, so an empty file (or no file) is a valid
configuration with no platforms enabled.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Backend Configuration
# =============================================================================


class BackendConfig(BaseModel):
    """Connection to the opencode agent server."""

    model_config = ConfigDict(extra="allow")

    base_url: str = "http://127.0.0.1:4096"
    directory: str | None = None
    request_timeout: float = Field(default=30.0, gt=0)


# =============================================================================
# Bridge Configuration
# =============================================================================


class BridgeConfig(BaseModel):
    """Routing engine tuning."""

    model_config = ConfigDict(extra="allow")

    response_mode: Literal["stream", "poll"] = "stream"
    min_flush_interval: float = Field(default=0.8, ge=0.0)
    dedup_capacity: int = Field(default=2000, ge=1)
    response_timeout: float = Field(default=90.0, gt=0)
    poll_interval: float = Field(default=1.5, ge=0.0)
    reconnect_base_delay: float = Field(default=5.0, ge=0.0)
    reconnect_max_delay: float = Field(default=60.0, ge=0.0)
    reasoning_prefix: str = "💭 "
    processing_reaction: str | None = "👀"


# =============================================================================
# Platform Configuration
# =============================================================================


class PlatformAdapterConfig(BaseModel):
    """Base configuration shared by all platform adapters."""

    model_config = ConfigDict(extra="allow")

    enable: bool = False


class TelegramConfig(PlatformAdapterConfig):
    """Telegram bot configuration.

    Uses long polling, so no webhook or public URL is needed.
    """

    bot_token: str = ""
    allowed_users: list[str] = Field(default_factory=list)
    polling_interval: float = Field(default=2.0, ge=0.0)


class TeamsConfig(PlatformAdapterConfig):
    """Microsoft Teams configuration.

    Polls chats through Microsoft Graph with a delegated user token. A
    refresh token lets the adapter renew the access token on its own.
    """

    client_id: str = ""
    client_secret: str | None = None
    tenant_id: str = "common"
    access_token: str | None = None
    refresh_token: str | None = None
    poll_interval_ms: int = Field(default=3000, ge=100)
    target_user_id: str | None = None
    max_attachment_bytes: int = Field(default=10 * 1024 * 1024, ge=0)
    redirect_uri: str = "http://localhost:3847/callback"

    @model_validator(mode="after")
    def _check_credentials(self) -> "TeamsConfig":
        if not self.enable:
            return self
        if not self.client_id:
            raise ValueError("platforms.teams.client_id is required")
        if not self.access_token and not self.refresh_token:
            raise ValueError(
                "platforms.teams requires access_token or refresh_token"
            )
        return self


class PlatformsConfig(BaseModel):
    """Per-platform adapter sections."""

    model_config = ConfigDict(extra="allow")

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    teams: TeamsConfig = Field(default_factory=TeamsConfig)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Root Configuration
# =============================================================================


class Config(BaseModel):
    """
    Root configuration model for InkBridge.

    Configuration can be loaded from a YAML file and environment variables,
    merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    backend: BackendConfig = Field(default_factory=BackendConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    platforms: PlatformsConfig = Field(default_factory=PlatformsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def enabled_platforms(self) -> list[str]:
        """Names of platform sections with ``enable: true``."""
        return [
            name
            for name in ("telegram", "teams")
            if getattr(self.platforms, name).enable
        ]
