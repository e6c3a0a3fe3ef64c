"""Show records as returned by the shows and user_shows tables."""
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from tvbingefriend_feed_service.streamers import normalize_streamers


class ShowStatus(str, Enum):
    """Status a user can give a show."""

    WATCHLIST = "watchlist"
    LOVED_IT = "loved_it"
    LIKED_IT = "liked_it"
    NOT_FOR_ME = "not_for_me"


# Synthetic status meaning "any rating status"
ALL_RATED = "all_rated"

RATED_STATUSES = (ShowStatus.LIKED_IT, ShowStatus.LOVED_IT, ShowStatus.NOT_FOR_ME)
POSITIVE_STATUSES = (ShowStatus.LIKED_IT, ShowStatus.LOVED_IT)


class SortOption(str, Enum):
    LATEST = "latest"
    RATING = "rating"
    RECENTLY_ADDED = "recently_added"
    BEST_RATED = "best_rated"
    BY_RATING = "by_rating"


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _extract_streamers(row: Dict[str, Any]) -> List[str]:
    """Collect provider names from either the streamers column or streaming_info.US."""
    streamers = row.get("streamers")
    if streamers:
        return normalize_streamers(streamers)

    streaming_info = row.get("streaming_info")
    if not isinstance(streaming_info, dict):
        return []
    providers = streaming_info.get("US") or []
    values = []
    for provider in providers:
        if not isinstance(provider, dict):
            continue
        # Prefer the name; fall back to the id when the name is unknown
        name = provider.get("provider_name")
        values.append(name if normalize_streamers([name]) else provider.get("provider_id"))
    return normalize_streamers(values)


@dataclass
class Show:
    """A trackable show/series record.

    Mirrors a row of the shows table, with an optional per-user overlay.
    """

    imdb_id: str
    name: str
    id: Optional[int] = None
    original_name: Optional[str] = None
    first_air_date: Optional[str] = None
    last_air_date: Optional[str] = None
    status: Optional[str] = None
    imdb_rating: Optional[float] = None
    imdb_vote_count: Optional[int] = None
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    our_score: Optional[float] = None
    overview: Optional[str] = None
    our_description: Optional[str] = None
    poster_url: Optional[str] = None
    poster_path: Optional[str] = None
    poster_thumb_url: Optional[str] = None
    genre_ids: List[int] = field(default_factory=list)
    genre_names: List[str] = field(default_factory=list)
    streamers: List[str] = field(default_factory=list)
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None
    type: Optional[str] = None
    next_season_date: Optional[str] = None
    created_at: Optional[str] = None
    main_cast: List[str] = field(default_factory=list)
    creators: List[str] = field(default_factory=list)
    show_in_discovery: bool = False
    user_status: Optional[ShowStatus] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], user_status: Optional[str] = None) -> "Show":
        """
        Build a Show from a shows table row.

        Args:
            row: JSON object from the shows resource
            user_status: Optional status from a joined user_shows row

        Returns:
            Show instance
        """
        return cls(
            imdb_id=row["imdb_id"],
            name=row.get("name") or "",
            id=row.get("id"),
            original_name=row.get("original_name"),
            first_air_date=row.get("first_air_date"),
            last_air_date=row.get("last_air_date"),
            status=row.get("status"),
            imdb_rating=row.get("imdb_rating"),
            imdb_vote_count=row.get("imdb_vote_count"),
            vote_average=row.get("vote_average"),
            vote_count=row.get("vote_count"),
            our_score=row.get("our_score"),
            overview=row.get("overview"),
            our_description=row.get("our_description"),
            poster_url=row.get("poster_url"),
            poster_path=row.get("poster_path"),
            poster_thumb_url=row.get("poster_thumb_url"),
            genre_ids=list(row.get("genre_ids") or []),
            streamers=_extract_streamers(row),
            number_of_seasons=row.get("number_of_seasons"),
            number_of_episodes=row.get("number_of_episodes"),
            type=row.get("type"),
            next_season_date=row.get("next_season_date"),
            created_at=row.get("created_at"),
            main_cast=list(row.get("main_cast") or []),
            creators=list(row.get("creators") or []),
            show_in_discovery=bool(row.get("show_in_discovery", False)),
            user_status=ShowStatus(user_status) if user_status else None,
        )

    @classmethod
    def from_user_show_row(cls, row: Dict[str, Any]) -> Optional["Show"]:
        """
        Build a Show from a user_shows row with an embedded shows object.

        Returns:
            Show with user_status set, or None when the embedded show is missing
        """
        embedded = row.get("shows")
        if not isinstance(embedded, dict) or not embedded.get("imdb_id"):
            return None
        return cls.from_row(embedded, user_status=row.get("status"))

    @property
    def poster(self) -> Optional[str]:
        """Poster URL with fallback to the poster path."""
        return self.poster_url or self.poster_path

    @property
    def description(self) -> str:
        """Prefer our own description over the TMDB overview."""
        return self.our_description or self.overview or ""

    @property
    def next_season(self) -> Optional[date]:
        return _parse_date(self.next_season_date)

    @property
    def first_air_year(self) -> Optional[int]:
        aired = _parse_date(self.first_air_date)
        return aired.year if aired else None

    def series_info(self) -> str:
        """Short season summary, e.g. '3 seasons, Ended'."""
        if self.type == "Miniseries":
            return "Mini Series"
        if not self.number_of_seasons:
            return "Series"
        suffix = f", {self.status}" if self.status else ""
        if self.number_of_seasons == 1:
            return f"1 season{suffix}"
        return f"{self.number_of_seasons} seasons{suffix}"

    def to_dict(self) -> Dict[str, Any]:
        """Row fields plus the display fields derived from them."""
        data = asdict(self)
        data["user_status"] = self.user_status.value if self.user_status else None
        data["poster"] = self.poster
        data["description"] = self.description
        data["first_air_year"] = self.first_air_year
        data["series_info"] = self.series_info()
        return data

    def __repr__(self):
        return f"<Show(imdb_id='{self.imdb_id}', name='{self.name}')>"
