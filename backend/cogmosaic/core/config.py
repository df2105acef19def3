"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the alignment tolerances used when reconciling source pyramids, the default
block size used for untiled layouts, CORS origins, the access token sent to
tile endpoints and the logging setup.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from cogmosaic.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.default_block_size)

    Environment variables can override defaults:
        >>> DEFAULT_BLOCK_SIZE=512
        >>> RESOLUTION_TOLERANCE=0.05
        >>> LOG_LEVEL=DEBUG
"""

import functools

import pydantic
import pydantic_settings


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        default_block_size: Square tile size requested for untiled or
            strip-like layouts (tile width differs from height and the height
            is below this size).
        resolution_tolerance: Relative tolerance when comparing a source's
            scaled resolution ladder with the baseline ladder.
        render_tile_size_tolerance: Relative tolerance when comparing render
            tile sizes across sources.
        source_tile_size_tolerance: Relative tolerance when comparing raw
            source tile sizes across sources (exact match by default).
        allow_origins: List of allowed CORS origins (["*"] allows all).
        access_token: Optional bearer token sent with COG and metadata
            requests.
        http_timeout_seconds: Timeout for HEAD and metadata probes.
        log_level: Console log level name.
        log_json: Emit console logs as one JSON object per line.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     default_block_size=512,
            ...     resolution_tolerance=0.05,
            ... )

        Or use environment variables:
            >>> export DEFAULT_BLOCK_SIZE=512
            >>> settings = Settings()  # Loads from environment
    """

    default_block_size: int = pydantic.Field(default=256, gt=0)
    resolution_tolerance: float = pydantic.Field(default=0.02, ge=0.0)
    render_tile_size_tolerance: float = pydantic.Field(default=0.01, ge=0.0)
    source_tile_size_tolerance: float = pydantic.Field(default=0.0, ge=0.0)
    allow_origins: list[str] = ["*"]
    access_token: str | None = None
    http_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    log_json: bool = False

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def auth_headers(self) -> dict[str, str]:
        """Build request headers carrying the configured access token.

        Returns:
            ``{"Authorization": "Bearer <token>"}`` when a token is set,
            otherwise an empty dictionary.
        """
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}

        return {}


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.

    Example:
        The settings are cached, so multiple calls return the same instance:
            >>> settings1 = get_settings()
            >>> settings2 = get_settings()
            >>> assert settings1 is settings2  # Same instance
    """
    return Settings()
