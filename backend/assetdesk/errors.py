# Overview: Typed error taxonomy shared by services and the HTTP layer.

"""
Error taxonomy

Services raise these; the central handler registered in create_app()
maps each one to {"success": false, "message": ...} with its status code.

- ValidationError       400  missing/malformed input, past expectedReturnAt
- UnauthenticatedError  401  no acting user
- ForbiddenError        403  role not allowed
- NotFoundError         404  row absent or soft-deleted
- ConflictError         409  duplicate serial, unit already assigned, closed assignment
- StoreUnavailableError 500  database connection/lock failure
"""

from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError, ValueError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid request"


class UnauthenticatedError(AppError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Permission denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"

    def __init__(self, message: str | None = None, *, entity: str | None = None):
        self.entity = entity
        if message is None and entity:
            message = f"{entity} not found"
        super().__init__(message)


class ConflictError(AppError, ValueError):
    """409-level business rule conflict (e.g., duplicate serial number)."""
    status_code = 409
    default_message = "Conflict"


class NotAvailableError(ConflictError):
    """A specifically requested inventory unit cannot be assigned."""
    default_message = "Specified inventory item not available"


class OutOfStockError(ConflictError):
    """No AVAILABLE unit left for FIFO auto-selection."""
    default_message = "No inventory available for assignment"


class StoreUnavailableError(AppError):
    status_code = 500
    default_message = "Data store unavailable"
