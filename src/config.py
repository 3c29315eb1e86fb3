from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

# Application version
VERSION = "0.1.0"


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Utilizes pydantic-settings for robust validation and type-casting.
    """

    # Server Configuration
    HOST: str = "127.0.0.1"
    PORT: int = 3000
    LOG_LEVEL: str = "info"
    RELOAD: bool = False
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_URL: str = "/openapi.json"

    # FFmpeg Configuration
    # Explicit binary path (e.g. a bundled build). Falls back to PATH lookup.
    FFMPEG_PATH: Optional[str] = None
    FFMPEG_BUFSIZE: str = "6000k"
    FFMPEG_MAX_MUXING_QUEUE_SIZE: int = 1024

    # Destination ingest; the operator's stream key is appended as the last path segment
    KICK_INGEST_URL: str = "rtmps://fa723fc1b171.global-contribute.live-video.net/app"

    # Twitch source resolution
    TWITCH_GQL_URL: str = "https://gql.twitch.tv/gql"
    TWITCH_USHER_URL: str = "https://usher.ttvnw.net/api/channel/hls"
    # Public web client id used by the Twitch web player
    TWITCH_CLIENT_ID: str = "kimne78kx3ncx6brgo4mv6wki5h1ko"
    # Total timeout (seconds) for each upstream call made while resolving a source
    RESOLVER_TIMEOUT: float = 10.0

    # Number of ffmpeg output lines kept for the status endpoint
    LOG_BUFFER_SIZE: int = 100
    # Trailing ffmpeg lines attached to a relay_exited notification
    EXIT_LOG_TAIL: int = 20

    # Model configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",  # No prefix, read directly from .env
        extra="ignore"  # Ignore extra environment variables from container
    )


# Global settings instance
settings = Settings()
