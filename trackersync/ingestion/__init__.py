"""
Feed registry for device discovery sources.

Each feed is registered under its source_name. Auto-mode runs use
get_feed() to pick the configured source (the tracking portal by default).
"""
from trackersync.ingestion.base import DeviceFeed

_registry: dict[str, DeviceFeed] = {}

DEFAULT_FEED = "tracking_portal"


def register_feed(feed: DeviceFeed) -> None:
    """Register a feed instance by its source_name."""
    _registry[feed.source_name] = feed


def get_feed(name: str = DEFAULT_FEED) -> DeviceFeed | None:
    """Return a specific feed by name."""
    return _registry.get(name)


def get_all_feeds() -> list[DeviceFeed]:
    return list(_registry.values())


def _register_all() -> None:
    from trackersync.ingestion.tracking_portal import TrackingPortalFeed

    register_feed(TrackingPortalFeed())


_register_all()
