"""Service tying the repositories to the per-view paging and counters."""
import logging
from functools import partial
from typing import Dict, Optional, Tuple

from tvbingefriend_feed_service.config import get_default_page_size
from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.models import (
    FetchRequest,
    FetchResult,
    FilterState,
    ShowStatus,
    ShowsView,
    SortOption,
)
from tvbingefriend_feed_service.repos import (
    GenreRepository,
    ShowRepository,
    SupabaseRestClient,
    UserShowRepository,
)
from tvbingefriend_feed_service.services.image_preloader import ImagePreloader
from tvbingefriend_feed_service.services.navigation_counters import NavigationCounters
from tvbingefriend_feed_service.services.pagination import PageFetcher, ShowsPaginator

logger = logging.getLogger(__name__)


class FeedService:
    """Service for reading feeds and recording a user's show statuses."""

    def __init__(
            self,
            client: Optional[SupabaseRestClient] = None,
            image_preloader: Optional[ImagePreloader] = None
    ):
        """
        Initialize the feed service.

        Args:
            client: REST client (built from configuration when omitted;
                raises ConfigurationError if credentials are missing)
            image_preloader: Shared poster preloader handed to paginators
        """
        self.client = client or SupabaseRestClient()
        self.genre_repo = GenreRepository(self.client)
        self.user_show_repo = UserShowRepository(self.client, self.genre_repo)
        self.show_repo = ShowRepository(self.client, self.genre_repo, self.user_show_repo)
        self.image_preloader = image_preloader

    def fetch_page(
            self,
            view: ShowsView,
            user_id: Optional[str] = None,
            offset: int = 0,
            limit: Optional[int] = None,
            sort_by: Optional[SortOption] = None,
            filters: Optional[FilterState] = None
    ) -> FetchResult:
        """
        Fetch one page of a view.

        Discover excludes the user's own shows when a user is given. User
        views without a user return an empty page.
        """
        view = ShowsView(view)
        limit = limit or get_default_page_size()
        sort_by = SortOption(sort_by) if sort_by else view.default_sort

        if view.requires_user and not user_id:
            logger.info(f"No user for {view.value} view, returning empty page")
            return FetchResult(items=[], has_more=False, next_offset=offset)

        if view is ShowsView.DISCOVER:
            request = FetchRequest(
                limit=limit,
                offset=offset,
                sort_by=sort_by,
                filters=filters or FilterState(),
                show_in_discovery=True,
                exclude_user_shows=bool(user_id),
                user_id=user_id,
            )
            return self.show_repo.fetch_shows(request)

        if view is ShowsView.NEW_SEASONS:
            return self.user_show_repo.fetch_new_seasons_shows(user_id, limit=limit, offset=offset)

        return self.user_show_repo.fetch_user_shows(
            user_id, view.status_filter, sort_by=sort_by, limit=limit, offset=offset
        )

    def page_fetcher(self, view: ShowsView, user_id: Optional[str] = None) -> PageFetcher:
        return partial(self.fetch_page, ShowsView(view), user_id)

    def update_show_status(self, user_id: str, imdb_id: str, status: ShowStatus) -> Optional[FeedServiceError]:
        return self.user_show_repo.update_user_show_status(user_id, imdb_id, status)

    def fetch_filter_options(self) -> Tuple[Dict, Optional[FeedServiceError]]:
        return self.show_repo.fetch_filter_options()

    def create_counters(self, **kwargs) -> NavigationCounters:
        return NavigationCounters(self.show_repo, self.user_show_repo, **kwargs)

    def create_paginator(
            self,
            view: ShowsView,
            user_id: Optional[str] = None,
            counters: Optional[NavigationCounters] = None,
            **kwargs
    ) -> ShowsPaginator:
        """
        Build a paginator for a view.

        With counters, a completed status write refreshes the counts, and
        paginators of user views reload whenever the counts refresh.
        """
        view = ShowsView(view)
        status_updater = None
        if user_id:
            def status_updater(show, status):
                return self.update_show_status(user_id, show.imdb_id, status)

        on_action_complete = None
        if counters is not None:
            def on_action_complete(show, status, error):
                counters.refresh()

        paginator = ShowsPaginator(
            view,
            self.page_fetcher(view, user_id),
            status_updater=status_updater,
            image_preloader=self.image_preloader,
            on_action_complete=on_action_complete,
            **kwargs,
        )

        if counters is not None and view is not ShowsView.DISCOVER:
            def reload(counts, trigger):
                if paginator.closed:
                    counters.remove_listener(reload)
                    return
                logger.info(f"Refreshing {view.value} after counter refresh {trigger}")
                paginator.refresh()

            counters.add_listener(reload)
        return paginator
