"""HTTP surface of the package feed."""

from .server import FeedConfig, PackageFeedServer, create_feed_server, run_feed_server_sync

__all__ = [
    "FeedConfig",
    "PackageFeedServer",
    "create_feed_server",
    "run_feed_server_sync",
]
