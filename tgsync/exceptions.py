# tgsync/exceptions.py


class SyncError(Exception):
    """Base exception for channel sync errors."""


class ConfigurationError(SyncError):
    """Raised when required settings are missing or invalid. Fatal at startup."""


class SourceFetchError(SyncError):
    """Raised when a channel page cannot be fetched or redirects away from the target."""


class StorageError(SyncError):
    """Raised when a write the sync depends on fails."""
