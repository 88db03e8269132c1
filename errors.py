from __future__ import annotations


class CatalogError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    status_code = 400


class AuthorizationError(CatalogError):
    status_code = 403


class NotFoundError(CatalogError):
    status_code = 404


class ConflictError(CatalogError):
    status_code = 409
