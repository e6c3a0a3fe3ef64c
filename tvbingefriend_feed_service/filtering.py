"""In-memory filtering and ordering applied after a remote fetch.

The remote query layer cannot reliably express array membership on the
genre_ids and streaming columns, so those filters run here over an
over-fetched batch.
"""
import math
from datetime import date, timedelta
from typing import AbstractSet, Iterable, List

from tvbingefriend_feed_service.models import FilterState, Show, SortOption
from tvbingefriend_feed_service.streamers import canonical_names_for_ids

STREAMER_OVERFETCH_RATIO = 10
STREAMER_MIN_FETCH = 200
GENRE_OVERFETCH_RATIO = 5
GENRE_MIN_FETCH = 100
EXCLUSION_OVERFETCH_RATIO = 1.8

# A next-season date counts as "new" when upcoming or within this window
NEW_SEASON_WINDOW = timedelta(days=180)

# Sorts that depend on show data and must be applied after the join
IN_MEMORY_SORTS = frozenset({SortOption.BEST_RATED, SortOption.RATING, SortOption.BY_RATING})


def compute_fetch_limit(limit: int, filters: FilterState, excluding: bool = False) -> int:
    """
    Number of raw rows to request so that in-memory filtering still fills a page.

    Args:
        limit: Number of shows the caller wants
        filters: Active filters
        excluding: True when owned shows are being excluded

    Returns:
        Fetch limit (the largest requirement of the active filters)
    """
    fetch_limit = limit
    if filters.streamer_ids:
        fetch_limit = max(fetch_limit, limit * STREAMER_OVERFETCH_RATIO, STREAMER_MIN_FETCH)
    if filters.genre_ids:
        fetch_limit = max(fetch_limit, limit * GENRE_OVERFETCH_RATIO, GENRE_MIN_FETCH)
    if excluding:
        fetch_limit = max(fetch_limit, math.ceil(limit * EXCLUSION_OVERFETCH_RATIO))
    return fetch_limit


def matches_genres(show: Show, genre_ids: AbstractSet[int]) -> bool:
    """Any-of genre membership."""
    return any(genre_id in genre_ids for genre_id in show.genre_ids)


def matches_streamers(show: Show, streamer_names: AbstractSet[str]) -> bool:
    """Any-of membership on canonical streamer names."""
    return any(name in streamer_names for name in show.streamers)


def apply_in_memory_filters(
        shows: Iterable[Show],
        filters: FilterState,
        excluded_ids: AbstractSet[str] = frozenset()
) -> List[Show]:
    """Drop excluded shows and shows failing the genre/streamer filters, keeping order."""
    if filters.is_empty and not excluded_ids:
        return list(shows)

    streamer_names = canonical_names_for_ids(filters.streamer_ids) if filters.streamer_ids else None

    result = []
    for show in shows:
        if show.imdb_id in excluded_ids:
            continue
        if filters.genre_ids and not matches_genres(show, filters.genre_ids):
            continue
        if streamer_names is not None and not matches_streamers(show, streamer_names):
            continue
        result.append(show)
    return result


def rating_sort_value(show: Show, sort_by: SortOption) -> float:
    if sort_by == SortOption.BEST_RATED:
        return show.our_score or 0
    if sort_by == SortOption.BY_RATING:
        return show.our_score or show.imdb_rating or show.vote_average or 0
    return show.imdb_rating or show.vote_average or show.our_score or 0


def sort_by_rating(shows: Iterable[Show], sort_by: SortOption) -> List[Show]:
    """Stable descending sort on the rating that sort_by displays."""
    return sorted(shows, key=lambda show: rating_sort_value(show, sort_by), reverse=True)


def is_recent_or_upcoming(show: Show, today: date) -> bool:
    next_season = show.next_season
    if next_season is None:
        return False
    return next_season > today - NEW_SEASON_WINDOW


def sort_new_seasons(shows: Iterable[Show], today: date) -> List[Show]:
    """Upcoming seasons (furthest first), then today, then past seasons (most recent first)."""
    def key(show: Show):
        aired = show.next_season
        if aired > today:
            return 0, -aired.toordinal()
        if aired == today:
            return 1, 0
        return 2, -aired.toordinal()

    return sorted((show for show in shows if show.next_season is not None), key=key)
