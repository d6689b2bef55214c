class ServiceError(Exception):
    """Base class for failures raised by the habit and todo services."""


class NotFoundError(ServiceError):
    """The entity does not exist or belongs to another user."""


class ValidationError(ServiceError):
    """Malformed input. Raised before anything is written."""


class ConsistencyError(ServiceError):
    """A row that was just written could not be read back."""
