"""
Configuration for TigrisDB SDK.

Uses pydantic-settings for environment variable loading. Every setting can
be passed explicitly or read from ``TIGRIS_*`` variables, with ``__`` as the
nested delimiter (``TIGRIS_NETWORK__USE_PLAINTEXT=true``).

Invariants:
    - Defaults target a local development server
    - Secrets (refresh token) are never logged
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

DEFAULT_DEADLINE = timedelta(seconds=5)


class NetworkConfig(BaseModel):
    """Network settings for the gRPC channel."""

    deadline: timedelta = Field(default=DEFAULT_DEADLINE, description="Per-call deadline")
    use_plaintext: bool = Field(
        default=False,
        description="Use an insecure channel. Not recommended in production.",
    )

    @property
    def deadline_seconds(self) -> float:
        """Deadline as the float seconds gRPC expects."""
        return self.deadline.total_seconds()


class OAuth2Config(BaseModel):
    """OAuth2 refresh-token settings."""

    token_url: str = Field(description="Token endpoint URL")
    client_id: str = Field(description="OAuth2 client id")
    refresh_token: SecretStr = Field(description="Long-lived refresh token")


class TigrisConfiguration(BaseSettings):
    """TigrisDB client configuration loaded from arguments or environment."""

    server_url: str = Field(default="localhost:8081", description="TigrisDB gRPC endpoint")
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    oauth2: OAuth2Config | None = Field(default=None, description="OAuth2 settings")

    model_config = {"env_prefix": "TIGRIS_", "env_nested_delimiter": "__"}

    @property
    def auth_enabled(self) -> bool:
        """Whether calls carry a bearer token."""
        return self.oauth2 is not None
