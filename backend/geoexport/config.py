"""
GeoExport — Configuration via pydantic-settings.

Environment variables override defaults.  The standard projection is the
reference system every GeoJSON export is reprojected to unless the user
asks to keep native coordinates.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    env_path: ClassVar[str] = str(Path(__file__).resolve().parents[2] / ".env")
    model_config = SettingsConfigDict(
        env_file=env_path,
        env_file_encoding="utf-8",
        env_prefix="GEOEXPORT_",
        # Ignore unrelated environment variables so loading the env_file
        # does not cause validation errors for unknown keys.
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────
    app_name: str = "GeoExport"
    debug: bool = False

    # ── Projections ────────────────────────────────────────────────
    # Target of client-side reprojection for GeoJSON exports.
    standard_projection: str = "EPSG:4326"
    # Filename label used when the export is not in native coordinates.
    standard_projection_label: str = "WGS84"
    # Filename label used for native exports of layers that do not
    # advertise a default projection.
    native_projection_fallback_label: str = "Native"

    # ── Feature service (WFS) ──────────────────────────────────────
    wfs_version: str = "2.0.0"
    wfs_output_format: str = "application/json"
    # Features requested per GetFeature page.
    wfs_page_size: int = 1000
    # Per-request timeout in seconds.
    wfs_timeout_s: float = 60.0

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse the comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
