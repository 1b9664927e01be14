"""
Everything Is An Ordeal: Custom Exception Hierarchy
======================================================

What:  Application-specific exceptions, one per failure category.
How:   Each exception carries a user-safe message and an optional context dict.
       Global handlers registered in main.py map them to HTTP responses.
Who:   Raised by services and the store; caught by the global handlers.

Exception Hierarchy:
    OrdealError (base)
    ├── ValidationError     → 400 Bad Request (e.g. no image attached)
    ├── NotFoundError       → 404 Not Found
    ├── FileStorageError    → 500 Internal Server Error
    └── DatabaseError       → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class OrdealError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in a response)
        context:  Additional debug info (logged, never returned to the client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(OrdealError):
    """
    Raised when client input cannot be accepted.

    When:  Create request without an image, oversized upload, or bytes that do
           not decode as an image.
    HTTP:  400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(OrdealError):
    """
    Raised when a requested resource does not exist.

    The store returns None for a miss; the service layer converts that into
    this exception only where the caller needs a 404 (the JSON API). The HTML
    catch-all treats a miss as "prompt to create" instead.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(OrdealError):
    """
    Raised when writing an uploaded or processed image fails.

    When:  Disk full, permission denied, unwritable directory.
    HTTP:  500 Internal Server Error

    File *removals* never raise this; they are best-effort and only logged.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(OrdealError):
    """
    Raised when a store operation fails.

    Every backing-store failure (connection, query, write) is wrapped in this
    type and propagated. The client only ever sees a generic message; the
    original error type goes into `context` for the logs.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
