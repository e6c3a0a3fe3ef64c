"""Service classes"""

from .feed_service import FeedService
from .image_preloader import ConnectionHints, ImagePreloader, split_priority_buckets
from .navigation_counters import Counts, NavigationCounters
from .pagination import PageState, ShowsPaginator, merge_unique

__all__ = [
    "ConnectionHints",
    "Counts",
    "FeedService",
    "ImagePreloader",
    "NavigationCounters",
    "PageState",
    "ShowsPaginator",
    "merge_unique",
    "split_priority_buckets",
]
