"""Custom exceptions for the SalonHub application."""

class SaasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """Raised for malformed input (missing start time, non-positive duration...)."""
    def __init__(self, message, payload=None):
        super().__init__(message, status_code=422, payload=payload)

class NotFoundError(SaasError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class ConflictError(BusinessLogicError):
    """Raised when a booking window overlaps an active appointment."""
    def __init__(self, message="The requested time slot is no longer available", conflicting_ids=None):
        payload = {'conflicting_appointment_ids': list(conflicting_ids)} if conflicting_ids else None
        super().__init__(message, status_code=409, payload=payload)
        self.conflicting_ids = list(conflicting_ids or [])

class InvalidTransitionError(BusinessLogicError):
    """Raised when a status change is not allowed from the current status."""
    def __init__(self, entity, current, requested):
        message = f"Cannot change {entity} status from '{current}' to '{requested}'"
        super().__init__(message, status_code=409)

class UnauthorizedError(SaasError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)
