"""Domain models"""

from tvbingefriend_feed_service.models.feed import FetchRequest, FetchResult, FilterState, ShowsView
from tvbingefriend_feed_service.models.show import (
    ALL_RATED,
    POSITIVE_STATUSES,
    RATED_STATUSES,
    Show,
    ShowStatus,
    SortOption,
)

__all__ = [
    "ALL_RATED",
    "FetchRequest",
    "FetchResult",
    "FilterState",
    "POSITIVE_STATUSES",
    "RATED_STATUSES",
    "Show",
    "ShowStatus",
    "ShowsView",
    "SortOption",
]
