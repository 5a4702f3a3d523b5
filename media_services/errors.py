"""Exception hierarchy shared by the resolver, the data context and the tools."""


class MediaServicesError(RuntimeError):
    """Base class for every failure raised by this package."""


class EndpointResolutionError(MediaServicesError):
    """The logical endpoint could not be resolved to a service endpoint."""


class RedirectLocationError(EndpointResolutionError):
    """A 301 probe response carried a missing or unusable Location header."""

    def __init__(self, message: str, *, location: str | None = None) -> None:
        super().__init__(message)
        self.location = location


class UnexpectedStatusError(EndpointResolutionError):
    """The probe answered with a status other than 200 or 301."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Unexpected response code {status_code} while resolving {url}.")
        self.status_code = status_code
        self.url = url


class TransientServiceError(MediaServicesError):
    """Raised by collaborators that want the retry policy to try again."""


class ServiceConnectivityError(MediaServicesError):
    """Transient failures persisted after the retry policy gave up."""


class AccessTokenError(MediaServicesError):
    """No usable access token was available for an outgoing request."""


class DataServiceRequestError(MediaServicesError):
    """A data service request completed with an error status."""

    def __init__(self, message: str, *, status_code: int, method: str, url: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.url = url


class UnknownPropertyError(MediaServicesError):
    """A payload carried properties the entity type does not declare."""


class EntityTrackingError(MediaServicesError):
    """An entity was used in a way its tracking state does not allow."""
