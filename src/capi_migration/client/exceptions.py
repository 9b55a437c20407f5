"""Custom exceptions for capi-migration.

The hierarchy encodes how a failure must be handled by the caller:

- ``NotFoundError`` and ``AlreadyExistsError`` are branch signals used by
  lookups and idempotent creates.
- ``RetryableError`` subclasses mean "try again later" (new infrastructure not
  ready yet, transient API trouble).
- ``FatalError`` subclasses mean the invocation cannot succeed without operator
  intervention (ambiguous or missing input, broken templates, a helper pod that
  failed for good).
"""


class CAPIMigrationError(Exception):
    """Base exception for all capi-migration errors."""

    pass


class RetryableError(CAPIMigrationError):
    """Base class for conditions that resolve on their own over time."""

    pass


class FatalError(CAPIMigrationError):
    """Base class for conditions that require operator intervention."""

    pass


class ConfigurationError(FatalError):
    """Raised when configuration is invalid or missing."""

    pass


class APIError(CAPIMigrationError):
    """Base class for resource store API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str | None = None,
        response: dict | None = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            reason: Kubernetes status reason (e.g. AlreadyExists, Conflict)
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.reason = reason
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and reason."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.reason:
            msg = f"{msg} ({self.reason})"
        return msg


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class AlreadyExistsError(APIError):
    """Raised when creating a resource that already exists (409 AlreadyExists).

    Synthesis treats this as success.
    """

    pass


class ConflictError(APIError, RetryableError):
    """Raised when a version-checked update loses against a concurrent write."""

    pass


class AuthorizationError(APIError):
    """Raised when the store rejects our credentials (401/403)."""

    pass


class ServerError(APIError, RetryableError):
    """Raised when the store returns a 5xx error."""

    pass


class NetworkError(RetryableError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class CloudAPIError(CAPIMigrationError):
    """Raised when a cloud provider API call fails."""

    def __init__(self, message: str, provider: str, operation: str):
        self.provider = provider
        self.operation = operation
        super().__init__(f"{provider} {operation}: {message}")


class TransientCloudError(CloudAPIError, RetryableError):
    """Raised for throttling and server-side cloud failures."""

    pass


class NotReadyError(RetryableError):
    """Raised when new infrastructure is not healthy or sufficient yet."""

    pass


class NewMasterNotReadyError(NotReadyError):
    """Raised when the new control-plane node is missing or not ready."""

    pass


class WorkersNotReadyError(NotReadyError):
    """Raised when fewer new workers are ready than legacy capacity to replace."""

    def __init__(self, message: str, ready: int, required: int):
        self.ready = ready
        self.required = required
        super().__init__(message)


class PodNotSucceededError(NotReadyError):
    """Raised while a helper pod has not reached a terminal phase."""

    pass


class WorkloadClusterUnavailableError(NotReadyError):
    """Raised when the workload cluster API cannot be reached yet."""

    pass


class InputError(FatalError):
    """Raised when legacy input resources are not in the expected shape."""

    pass


class AmbiguousInputError(InputError):
    """Raised when more matches than expected exist for a unique resource."""

    pass


class MissingInputError(InputError):
    """Raised when a resource required as migration input does not exist."""

    pass


class TooManyMastersError(AmbiguousInputError):
    """Raised when more than one new control-plane node exists."""

    pass


class TemplateRenderError(FatalError):
    """Raised when a resource template cannot be rendered or decoded."""

    pass


class PermanentStepError(FatalError):
    """Raised when a step observed a terminal failure and must not be retried."""

    pass


class PodFailedError(PermanentStepError):
    """Raised when a helper pod finished in the Failed phase."""

    pass


class MigrationStateError(CAPIMigrationError):
    """Raised when an operation is invoked in the wrong migration phase."""

    pass


class NotMigratedError(MigrationStateError):
    """Raised when cleanup is requested before migration has completed."""

    pass


class NotPreparedError(MigrationStateError):
    """Raised when migration is triggered before preparation completed."""

    pass


class VaultError(CAPIMigrationError):
    """Base class for Vault-related errors."""

    pass


class VaultAuthenticationError(VaultError):
    """Raised when Vault authentication fails."""

    pass


def is_retryable(error: BaseException) -> bool:
    """Return True if the caller should simply retry later."""
    return isinstance(error, RetryableError)


def requires_intervention(error: BaseException) -> bool:
    """Return True if retrying cannot help and an operator must be alerted."""
    return isinstance(error, FatalError)
