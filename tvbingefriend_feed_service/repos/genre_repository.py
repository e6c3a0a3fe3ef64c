"""Repository for the genres lookup table."""
import logging
from typing import Dict, List

from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.models import Show
from tvbingefriend_feed_service.repos.rest_client import SupabaseRestClient

logger = logging.getLogger(__name__)


class GenreRepository:
    """
    Repository for genre id/name lookups.
    """

    def __init__(self, client: SupabaseRestClient):
        self.client = client

    def fetch_genres(self) -> List[Dict]:
        """Get all genres ordered by name."""
        return self.client.select("genres", [("select", "id,name"), ("order", "name.asc")])

    def add_genre_names(self, shows: List[Show]) -> List[Show]:
        """
        Fill in genre_names for each show.

        A failed lookup leaves every show with an empty name list rather than
        failing the page.

        Args:
            shows: Shows to annotate (modified in place)

        Returns:
            The same list
        """
        genre_ids = sorted({genre_id for show in shows for genre_id in show.genre_ids if genre_id})
        if not genre_ids:
            for show in shows:
                show.genre_names = []
            return shows

        try:
            rows = self.client.select(
                "genres",
                [("select", "id,name"), ("id", f"in.({','.join(str(i) for i in genre_ids)})")],
            )
        except FeedServiceError as e:
            logger.error(f"Error fetching genres: {e}")
            for show in shows:
                show.genre_names = []
            return shows

        genre_map = {row["id"]: row["name"] for row in rows}
        for show in shows:
            show.genre_names = [genre_map[i] for i in show.genre_ids if i in genre_map]
        return shows
