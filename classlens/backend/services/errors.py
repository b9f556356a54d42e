# --- Service Layer Exception Classes ---

class ServiceError(Exception):
    """General exception class for the service layer."""
    pass

class ValidationError(ServiceError):
    """A required field is empty or a roster entry would clash with another one."""
    pass

class NotFoundError(ServiceError):
    """The referenced classroom, student or report no longer exists."""
    pass
