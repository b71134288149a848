"""
Base feed interface for device discovery sources.
"""

from abc import ABC, abstractmethod

from trackersync.schemas.sync import DeviceRecord


class DeviceFeed(ABC):
    """Base class for all tracker device feeds."""

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    async def fetch_devices(self) -> list[DeviceRecord]:
        """
        Return every device the provider currently reports.

        Raises FeedError when the list cannot be obtained; a partial list
        is never returned in place of a failure.
        """
        pass


class StaticDeviceFeed(DeviceFeed):
    """Feed over an in-memory list (replays, fixtures, CSV exports)."""

    def __init__(self, devices: list[DeviceRecord], source_name: str = "static"):
        super().__init__(source_name)
        self._devices = list(devices)

    async def fetch_devices(self) -> list[DeviceRecord]:
        return list(self._devices)
