"""Exceptions raised by the 4me SDK.

Transport problems and API errors are not raised: they come back as an
invalid Response. Only the operations that promise to raise do so.
"""


class Sdk4meError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(Sdk4meError):
    """A required option is missing or the credentials are ambiguous."""


class PaginationError(Sdk4meError):
    """A page retrieved while walking a collection was invalid."""

    def __init__(self, message: str, response=None):
        super().__init__(message)
        self.response = response


class UploadFailedError(Sdk4meError):
    """An attachment or import file could not be uploaded."""


class MonitoringError(Sdk4meError):
    """The progress of an import or export job could not be monitored."""
