"""
wizgate error taxonomy.

Every stage of the acquisition pipeline raises one of these; none of them
is ever downgraded to a warning.
"""


class WizGateError(Exception):
    """Base class for all wizgate errors."""


class ConfigError(WizGateError):
    """Configuration file is unreadable or fails validation."""


class InvalidUrlError(WizGateError):
    """Download URL does not have the expected shape. No network call is made."""


class NetworkError(WizGateError):
    """Connection failure, timeout, or a non-200 HTTP response."""

    def __init__(self, message: str, url: str = "", status_code: int = 0):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class DownloadInterruptedError(WizGateError, OSError):
    """The response body stopped before it was fully written to disk."""


class VerificationError(WizGateError):
    """Signature could not be checked, or was checked and rejected."""


class IntegrityError(WizGateError):
    """Recomputed checksum does not match the published checksum."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"SHA-256 checksum verification failed. "
            f"Expected: {expected}, Actual: {actual}"
        )


class ValidationError(WizGateError, ValueError):
    """CLI invocation is not on the allow-list or contains forbidden characters."""
