class ServiceError(Exception):
    """
    Base class for failures raised by the service layer.
    Each subclass carries the HTTP status and the stable error code
    the API reports to clients.
    """
    status_code = 500
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class DuplicateError(ValidationError):
    code = "duplicate"


class AuthorizationError(ServiceError):
    status_code = 403
    code = "forbidden"


class ConsistencyError(ServiceError):
    """Stored data breaks a structural invariant (e.g. a branching version chain)."""
    status_code = 409
    code = "consistency_error"


class AuthenticationError(ServiceError):
    status_code = 401
    code = "unauthorized"
