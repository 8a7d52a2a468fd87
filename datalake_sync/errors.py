"""
Custom exceptions for the data lake sync.

Each class maps to one failure mode of the load/dump pipeline.
"""


class DataLakeSyncError(Exception):
    """Base error for the data lake sync."""

    pass


class ValidationError(DataLakeSyncError):
    """Malformed load request or window message."""

    pass


class ConfigurationError(DataLakeSyncError):
    """Missing or invalid entity settings (e.g. no initialLoadDate and no watermark)."""

    pass


class DispatchFailure(DataLakeSyncError):
    """The sync queue could not be reached while publishing a batch."""

    pass


class StreamFailure(DataLakeSyncError):
    """Cursor, serialization or upload error while dumping a window."""

    pass
