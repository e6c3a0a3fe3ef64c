"""Repository classes"""

from tvbingefriend_feed_service.repos.genre_repository import GenreRepository
from tvbingefriend_feed_service.repos.rest_client import SupabaseRestClient
from tvbingefriend_feed_service.repos.show_repository import ShowRepository
from tvbingefriend_feed_service.repos.user_show_repository import UserShowRepository

__all__ = [
    "GenreRepository",
    "ShowRepository",
    "SupabaseRestClient",
    "UserShowRepository",
]
