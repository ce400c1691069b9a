"""GeoExport — feature-service layer export backend."""

__version__ = "0.1.0"
