"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class DatasetWatcherError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(DatasetWatcherError):
    """Raised for issues related to configuration loading or validation."""


class StateStoreError(DatasetWatcherError):
    """Raised when the persisted watcher state cannot be written."""


class DownloadStartError(DatasetWatcherError):
    """Raised when the download requester fails to start a transfer."""


class UnsupportedDownloadOptionError(DownloadStartError):
    """
    Raised when a download is requested with an option the requester cannot honour,
    such as prompting the user for a save location.
    """
