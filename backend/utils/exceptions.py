class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, detail: str, status_code: int = 500):
        self.detail = detail
        self.status_code = status_code
        super().__init__(self.detail)


class NotFoundError(ServiceError):
    """Raised when a requested resource is not found."""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail, status_code=404)


class BadRequestError(ServiceError):
    """Raised for invalid client requests (e.g., bad input)."""

    def __init__(self, detail: str = "Bad request"):
        super().__init__(detail, status_code=400)


class RegistryError(ServiceError):
    """Raised when the collection registry is empty or inconsistent."""

    def __init__(self, detail: str = "Invalid collection registry"):
        super().__init__(detail, status_code=500)


class PurgeError(ServiceError):
    """Base for errors scoped to a single collection during a purge run."""

    error_type = "PurgeError"


class CollectionUnavailable(PurgeError):
    """Raised when the data store fails while operating on one collection."""

    error_type = "CollectionUnavailable"

    def __init__(self, detail: str = "Collection unavailable"):
        super().__init__(detail, status_code=503)


class ReferenceTypeMismatch(PurgeError):
    """Raised when an embedded reference cannot be compared to the tenant id."""

    error_type = "ReferenceTypeMismatch"

    def __init__(self, detail: str = "Embedded reference has an unsupported type"):
        super().__init__(detail, status_code=500)


class IdentityNotFound(PurgeError):
    """Raised when the account reset targets an identifier with no identity record."""

    error_type = "IdentityNotFound"

    def __init__(self, detail: str = "Identity record not found"):
        super().__init__(detail, status_code=404)
