"""Custom exceptions for Content Bridge.

This module defines exception classes for handling the error conditions
that can occur during API interactions, local file access and reference
remapping.
"""

from enum import Enum


class ContentMigrationError(Exception):
    """Base exception for all content migration tool errors."""

    pass


class APIError(ContentMigrationError):
    """Base class for API-related errors."""

    kind = "network_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        action: str | None = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
            action: Operation that failed (e.g. 'create_story')
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        self.action = action
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code, action and response."""
        msg = self.message
        if self.action:
            msg = f"{self.action}: {msg}"
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when authentication fails (401 Unauthorized)."""

    kind = "unauthorized"


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    kind = "unauthorized"


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    kind = "not_found"


class UnprocessableEntityError(APIError):
    """Raised when the API rejects a well-formed payload (422).

    The platform answers with 422 for semantic errors such as duplicate
    slugs or invalid parent references.
    """

    kind = "unprocessable_entity"


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (429 Too Many Requests)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        retry_after: int | None = None,
        action: str | None = None,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
            retry_after: Seconds to wait before retrying (from Retry-After header)
            action: Operation that failed
        """
        super().__init__(message, status_code, response, action)
        self.retry_after = retry_after


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    pass


class NetworkError(APIError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class FileSystemErrorKind(Enum):
    """Classification of local file system failures."""

    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    OTHER = "other"


class FileSystemError(ContentMigrationError):
    """Raised when reading or writing local migration data fails."""

    def __init__(self, message: str, kind: FileSystemErrorKind, path: str | None = None):
        """Initialize file system error.

        Args:
            message: Error message
            kind: Failure classification
            path: Path that could not be accessed
        """
        self.kind = kind
        self.path = path
        super().__init__(f"{message} ({kind.value}): {path}" if path else message)

    @classmethod
    def from_os_error(cls, action: str, error: OSError) -> "FileSystemError":
        """Classify an OSError raised while performing ``action``."""
        if isinstance(error, PermissionError):
            kind = FileSystemErrorKind.PERMISSION_DENIED
        elif isinstance(error, FileNotFoundError):
            kind = FileSystemErrorKind.NOT_FOUND
        else:
            kind = FileSystemErrorKind.OTHER
        return cls(f"Failed to {action}: {error.strerror or error}", kind, error.filename)


class StructuralContentError(ContentMigrationError):
    """Raised when a reference field does not match its declared schema type.

    Example: a ``bloks`` field holding an object instead of a list.
    """

    def __init__(self, field_type: str, value: object, expected: str = "an array"):
        self.field_type = field_type
        self.value = value
        super().__init__(
            f"Invalid {field_type} field: expected {expected}, but received {value!r}"
        )


class ManifestError(ContentMigrationError):
    """Raised when an existing manifest file cannot be parsed.

    Always fatal for the run that loads the manifest.
    """

    def __init__(self, message: str, path: str | None = None, line_number: int | None = None):
        self.path = path
        self.line_number = line_number
        location = f"{path}:{line_number}" if path and line_number else path
        super().__init__(f"{message} ({location})" if location else message)


class ConfigurationError(ContentMigrationError):
    """Raised when configuration is invalid or missing."""

    pass


class MigrationError(ContentMigrationError):
    """Raised when migration operations fail."""

    pass
