"""Failures raised while provisioning and tearing down Thunder Compute sessions."""

import typing as t


class ThunderComputeError(Exception):
    """Base class for every failure raised by this package."""

    status_code: t.Optional[int] = None
    default_message = "Thunder Compute request failed"

    def __init__(self, message: t.Optional[str] = None, status_code: t.Optional[int] = None):
        super().__init__(message or self.default_message)
        if status_code is not None:
            self.status_code = status_code


class CredentialRequired(ThunderComputeError):
    default_message = "Token is required to connect to Thunder Compute"


class Unauthorized(ThunderComputeError):
    status_code = 401
    default_message = "Unauthorized"


class BillingRequired(ThunderComputeError):
    status_code = 402
    default_message = "Billing information required"


class BadRequest(ThunderComputeError):
    status_code = 400
    default_message = "Missing required field: gpuType"


class NoActiveSession(ThunderComputeError):
    status_code = 404
    default_message = "No active Jupyter session"


class InternalProviderError(ThunderComputeError):
    status_code = 500
    default_message = "Internal error"


class ResourceUnavailable(ThunderComputeError):
    status_code = 503
    default_message = "GPU instance not available"


class UnknownProviderError(ThunderComputeError):
    default_message = "Unknown error occurred"


class MalformedResponse(ThunderComputeError):
    default_message = "Invalid response from Thunder Compute server: missing baseUrl or instance_ip/port"


class Timeout(ThunderComputeError, TimeoutError):
    default_message = "Connection timed out. Please try again or check your network connection."


class TransportError(ThunderComputeError):
    default_message = "Could not reach Thunder Compute"


class AlreadyProvisioning(ThunderComputeError):
    default_message = "Already connecting to Thunder Compute server"


class ManualEntryNotSupported(ThunderComputeError):
    default_message = "Custom server input is not supported"


class ProviderDisposed(ThunderComputeError):
    default_message = "Thunder Compute server provider has been shut down"


class SessionEnded(ThunderComputeError):
    default_message = "Thunder Compute session ended before the server was ready"


# Status code tables for the two control API endpoints.
START_SESSION_ERRORS: t.Dict[int, t.Type[ThunderComputeError]] = {
    401: Unauthorized,
    402: BillingRequired,
    400: BadRequest,
    503: ResourceUnavailable,
    500: InternalProviderError,
}

END_SESSION_ERRORS: t.Dict[int, t.Type[ThunderComputeError]] = {
    401: Unauthorized,
    404: NoActiveSession,
}


def error_for_status(
    status_code: int,
    table: t.Dict[int, t.Type[ThunderComputeError]],
    fallback: t.Type[ThunderComputeError] = UnknownProviderError,
    prefix: str = "",
) -> ThunderComputeError:
    """Build the exception matching ``status_code`` in ``table``.

    Codes absent from the table produce ``fallback`` carrying the code.
    """
    klass = table.get(status_code, fallback)
    return klass(f"{prefix}{klass.default_message}", status_code=status_code)
