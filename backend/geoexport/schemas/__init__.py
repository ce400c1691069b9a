"""Schemas subpackage — Pydantic request/response models."""

from geoexport.schemas.export import (
    DownloadOptions,
    DownloadOptionsRequest,
    ExportFormat,
    ExportRequest,
    ExportStateOut,
    LayerDescriptor,
)

__all__ = [
    "DownloadOptions",
    "DownloadOptionsRequest",
    "ExportFormat",
    "ExportRequest",
    "ExportStateOut",
    "LayerDescriptor",
]
