"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the export scratch directory, CORS origins, the upload policy (size cap and
accepted extensions), overlay rendering defaults, default export options
and the coordinate systems registered before any overlay is attached.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from geoview.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.overlay_opacity)

    Environment variables can override defaults:
        >>> EXPORT_WORK_DIR=/custom/path/exports
        >>> MAX_UPLOAD_SIZE_BYTES=1073741824
        >>> LOG_LEVEL=DEBUG
"""

import functools
import pathlib

import pydantic_settings

DEFAULT_CRS_DEFINITIONS: dict[str, str] = {
    "EPSG:4326": "+proj=longlat +datum=WGS84 +no_defs",
    "EPSG:3857": (
        "+proj=merc +a=6378137 +b=6378137 +lat_ts=0 +lon_0=0 +x_0=0 +y_0=0 "
        "+k=1 +units=m +nadgrids=@null +wktext +no_defs"
    ),
    "EPSG:32633": "+proj=utm +zone=33 +datum=WGS84 +units=m +no_defs",
    "EPSG:3785": (
        "+proj=merc +a=6378137 +b=6378137 +lat_ts=0.0 +lon_0=0.0 +x_0=0.0 "
        "+y_0=0 +k=1.0 +units=m +nadgrids=@null +no_defs"
    ),
}


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.
    The export scratch directory is created by ensure_directories().

    Attributes:
        export_work_dir: Scratch directory for tiling and export packaging.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        max_upload_size_bytes: Maximum raster upload size (default 500MB).
        allowed_extensions: File suffixes the upload endpoint accepts.
        overlay_opacity: Opacity handed to the client for new overlays.
        overlay_resolution: Tile size in pixels used to render overlays.
        crs_definitions: Code to PROJ string table registered at attach time.
        default_export_name: Output name used when the client sends none.
        default_min_zoom: Lowest zoom level exported by default.
        default_max_zoom: Highest zoom level exported by default.
        log_level: Root logging level applied by the application factory.
    """

    export_work_dir: pathlib.Path = pathlib.Path("/tmp/geoview/exports")
    allow_origins: list[str] = ["*"]
    max_upload_size_bytes: int = 500 * 1024 * 1024
    allowed_extensions: list[str] = [".tif", ".tiff"]
    overlay_opacity: float = 0.8
    overlay_resolution: int = 256
    crs_definitions: dict[str, str] = DEFAULT_CRS_DEFINITIONS
    default_export_name: str = "export"
    default_min_zoom: int = 10
    default_max_zoom: int = 16
    log_level: str = "INFO"

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def ensure_directories(self) -> None:
        """Create the local scratch directory used by export generators."""
        self.export_work_dir.mkdir(parents=True, exist_ok=True)


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance with directories initialized.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Directories are created on first call.

    Returns:
        Settings instance with all configuration values populated and
        directories ensured to exist.
    """
    settings = Settings()
    settings.ensure_directories()
    return settings
