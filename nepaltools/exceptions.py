"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class NepalToolsError(Exception):
    """Base exception for all application-specific errors."""

    kind = "NepalToolsError"


class FileTooLargeError(NepalToolsError):
    """Raised when a file exceeds the configured maximum file size."""

    kind = "FileTooLarge"

    def __init__(self, size_bytes: int, max_size_bytes: int):
        self.size_bytes = size_bytes
        self.max_size_bytes = max_size_bytes
        super().__init__(
            f"File too large ({size_bytes} bytes, max {max_size_bytes} bytes)."
        )


class InvalidBackupFormatError(NepalToolsError):
    """Raised when a backup document is missing required fields or is malformed."""

    kind = "InvalidBackupFormat"


class QuotaExceededError(NepalToolsError):
    """Raised when an import would push usage past the safe share of the quota."""

    kind = "QuotaExceeded"


class BackendIOError(NepalToolsError):
    """Raised when the underlying key-value backend fails to read or write."""

    kind = "BackendIOError"


class InvalidDataUrlError(NepalToolsError):
    """Raised when an encoded payload is not a valid base64 data URL."""

    kind = "InvalidDataUrl"


class InvalidSettingsError(NepalToolsError):
    """Raised when a settings update fails validation."""

    kind = "InvalidSettings"


class ConfigurationError(NepalToolsError):
    """Raised for issues related to configuration loading or validation."""

    kind = "ConfigurationError"


class InvalidMetadataError(NepalToolsError):
    """Raised when a metadata update would produce an invalid file record."""

    kind = "InvalidMetadata"
