"""
Exceptions raised by the reconciliation engine.

ManualInputError, FeedError and RunInProgressError fail a whole run.
DeviceError is scoped to one device and never escapes the orchestrator.
"""


class TrackerSyncError(Exception):
    """Base class for all reconciliation errors."""


class ManualInputError(TrackerSyncError):
    """Manual-mode input is malformed; raised before any device is processed."""

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class FeedError(TrackerSyncError):
    """Device discovery from the tracking provider failed."""


class DeviceError(TrackerSyncError):
    """Normalization, matching or repository failure for a single device."""

    def __init__(self, tracker_id: str, plate: str, message: str):
        super().__init__(message)
        self.tracker_id = tracker_id
        self.plate = plate

    def __str__(self) -> str:
        return f"{self.tracker_id} (plate: {self.plate}): {self.args[0]}"


class RunInProgressError(TrackerSyncError):
    """Another reconciliation run currently holds the run lock."""
