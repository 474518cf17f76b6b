# File: autoparts_catalog/errors.py
"""Errors raised by the catalog service and turned into JSON envelopes by main.py."""


class CatalogError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    """Missing or malformed input."""
    status_code = 400


class ConflictError(CatalogError):
    """Uniqueness violation, or a delete blocked by dependent rows."""
    status_code = 409


class NotFoundError(CatalogError):
    """A referenced id does not resolve."""
    status_code = 404


class InternalError(CatalogError):
    """Unexpected store or filesystem failure. The caller only sees a generic message."""
    status_code = 500

    def __init__(self, message: str = "Internal server error."):
        super().__init__(message)
