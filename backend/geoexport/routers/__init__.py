"""Routers subpackage — HTTP layer for all API endpoints."""

from geoexport.routers import exports

__all__ = ["exports"]
