from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Relay server settings."""

    HOST: str = "0.0.0.0"
    PORT: int = 3001
    LOG_LEVEL: str = "info"

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


class ClientSettings(BaseSettings):
    """Session orchestrator settings, read from ``SIGNALING_*`` variables."""

    URL: str = "ws://localhost:3001/ws/signal"

    # lets the existing member's handlers register before the first offer
    OFFER_DELAY_SECONDS: float = 1.0
    REACTION_TTL_SECONDS: float = 3.0

    STUN_SERVERS: list[str] = [
        "stun:stun.l.google.com:19302",
        "stun:stun1.l.google.com:19302",
    ]

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="SIGNALING_",
        extra="ignore",
    )


settings = Settings()
client_settings = ClientSettings()
