"""Configuration management for Brick-Works.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the BRICKWORKS_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Explicit keyword arguments passed to ``BrickworksConfig(...)``
2. Environment variables (BRICKWORKS_* prefix)
3. .env file in the project root
4. Default values defined in BrickworksConfig

Example .env file:
    BRICKWORKS_GEMINI_API_KEY=your-key
    BRICKWORKS_IMAGE_MODEL_ID=gemini-2.5-flash-image-preview
    BRICKWORKS_PRICING_BASE_URL=https://pricing.example.com/api
    BRICKWORKS_SERVER_PORT=7860

The API key is also accepted from the plain ``GEMINI_API_KEY`` or ``API_KEY``
variables so that keys exported for other Gemini tooling keep working.

Explicit Configuration
----------------------
Components never read the environment themselves.  The generation pipeline,
the pricing authority and the session orchestrator are all handed a
``BrickworksConfig`` instance at construction.  A global ``config`` instance
exists only for the HTTP application entry point.

Usage Example
-------------
    from brickworks.core.config import BrickworksConfig

    cfg = BrickworksConfig(gemini_api_key="secret", default_size="Large")
    key = cfg.require_api_key()
"""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import BuildSize


class BrickworksConfig(BaseSettings):
    """Main configuration for Brick-Works.

    Attributes
    ----------
    Generative Service:
        gemini_api_key : str | None
            Credential for the image generation / parts extraction service
        image_model_id : str
            Model used for both the image synthesis and the parts extraction call
        request_timeout : float
            Timeout in seconds for a single generative call

    Pricing Authority:
        pricing_base_url : str | None
            Base URL of an HTTP pricing service.  When unset, the bundled
            in-memory catalog is used instead.
        pricing_timeout : float
            Timeout in seconds for a single pricing lookup
        catalog_url_template : str
            Template for the canonical lookup reference of a validated part;
            ``{piece_id}`` is substituted
        allow_color_substitutes : bool
            Whether a substitute part may have a different color

    Uploads:
        default_size : BuildSize
            Size preselected for a new session
        allowed_mime_types : list[str]
            Image MIME types accepted at upload
        max_upload_bytes : int
            Largest accepted upload
        demo_image_urls : list[str]
            Demo images offered to clients.  The server only ever downloads
            these; requests select one by index.

    Server:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Port for uvicorn (1024-65535)
        log_level : str
            Root log level configured by the CLI entry point
        max_sessions : int
            Cap on sessions held in memory by the HTTP app
        session_ttl_seconds : float
            Idle time before the HTTP app discards a session

    Notes
    -----
    - Configuration is immutable after initialization
    - Missing credentials are not an error until a generative client is
      built; ``require_api_key()`` is the declared failure point
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BRICKWORKS_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # Generative service
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "gemini_api_key", "BRICKWORKS_GEMINI_API_KEY", "GEMINI_API_KEY", "API_KEY"
        ),
        description="API key for the Gemini image generation service",
    )
    image_model_id: str = Field(
        default="gemini-2.5-flash-image-preview",
        description="Model used for image synthesis and parts extraction",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for one generative call",
        gt=0,
    )

    # Pricing authority
    pricing_base_url: str | None = Field(
        default=None,
        description="Base URL of the HTTP pricing authority (None = bundled catalog)",
    )
    pricing_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for one pricing lookup",
        gt=0,
    )
    catalog_url_template: str = Field(
        default="https://www.bricklink.com/v2/catalog/catalogitem.page?P={piece_id}",
        description="Canonical lookup reference for a part; {piece_id} is substituted",
    )
    allow_color_substitutes: bool = Field(
        default=False,
        description="Allow substitutes in a different color",
    )

    # Uploads
    default_size: BuildSize = Field(
        default=BuildSize.MEDIUM,
        description="Size preselected for a new session",
    )
    allowed_mime_types: list[str] = Field(
        default=["image/png", "image/jpeg", "image/webp", "image/gif"],
        description="Image MIME types accepted at upload",
    )
    max_upload_bytes: int = Field(
        default=20 * 1024 * 1024,
        description="Largest accepted upload in bytes",
        gt=0,
    )
    demo_image_urls: list[str] = Field(
        default=[
            "https://imgs.search.brave.com/yhrnFkiWpCUvftRgqs8YfxOY8t9s8dHnUn0vb-P7bAo/"
            "rs:fit:860:0:0:0/g:ce/aHR0cHM6Ly9pLnBp/bmltZy5jb20vb3Jp/Z2luYWxzL2U1LzYw/"
            "L2MyL2U1NjBjMmNk/YTFmMzcwMTI0NjAx/Y2Q4Zjg3ZTU4OWJj/LmpwZw"
        ],
        description="Demo images a session may load; clients pick one by index",
    )

    # Server
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level for the CLI entry point",
    )
    max_sessions: int = Field(
        default=100,
        description="Most sessions held in memory; the least recently used is evicted",
        gt=0,
    )
    session_ttl_seconds: float = Field(
        default=3600.0,
        description="Idle time after which a session is discarded",
        gt=0,
    )

    def require_api_key(self) -> str:
        """Return the generative service API key.

        Raises:
            ConfigurationError: If no key is configured.
        """
        if not self.gemini_api_key or not self.gemini_api_key.strip():
            raise ConfigurationError(
                "Gemini API key not configured. Set BRICKWORKS_GEMINI_API_KEY "
                "(or GEMINI_API_KEY) and restart."
            )
        return self.gemini_api_key.strip()


# Global configuration instance used by the HTTP application.
config = BrickworksConfig()
