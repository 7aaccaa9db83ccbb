"""Exceptions raised by the catalog pipeline. Every one of them stops the run."""

from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base class for fatal catalog errors."""


class CatalogConfigError(CatalogError):
    """Invalid configuration (missing output dir, bad batch size, ...)."""


class RetailApiError(CatalogError):
    """A region fetch failed: transport error, HTTP status or undecodable page."""

    def __init__(self, message: str, *, region: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.region = region
        self.url = url
        self.status_code = status_code


class CatalogStateError(CatalogError):
    """Local state on disk (log.json, products-<region>.json) cannot be read."""

    def __init__(self, message: str, *, path: str):
        super().__init__(message)
        self.path = path


__all__ = ["CatalogError", "CatalogConfigError", "RetailApiError", "CatalogStateError"]
