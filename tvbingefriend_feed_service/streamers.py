"""Streaming provider name normalization.

Provider names arrive in many spellings ("Prime Video", "Amazon Prime Video",
"HBO Max", ...). Every name is mapped onto one canonical label from a fixed
allow-list; anything not recognised is dropped.
"""
from typing import Dict, FrozenSet, Iterable, List, Optional, Union

# TMDB provider ids of the streamers shown in the app
STREAMING_PROVIDERS: Dict[int, str] = {
    8: "Netflix",
    9: "Amazon Prime",
    337: "Disney+",
    1899: "Max",
    350: "Apple TV+",
    15: "Hulu",
    531: "Paramount+",
    386: "Peacock",
    37: "Showtime",
    43: "Starz",
    34: "MGM+",
    526: "AMC+",
    151: "BritBox",
    294: "PBS Masterpiece",
    283: "Crunchyroll",
    99: "Shudder",
    87: "Acorn TV",
}

CANONICAL_STREAMERS: FrozenSet[str] = frozenset(STREAMING_PROVIDERS.values())

# Keys are lower-cased with collapsed whitespace
STREAMER_SYNONYMS: Dict[str, str] = {
    "netflix basic with ads": "Netflix",
    "netflix standard with ads": "Netflix",
    "netflix kids": "Netflix",
    "prime video": "Amazon Prime",
    "amazon prime video": "Amazon Prime",
    "amazon prime": "Amazon Prime",
    "amazon video": "Amazon Prime",
    "prime video with ads": "Amazon Prime",
    "disney plus": "Disney+",
    "hbo max": "Max",
    "hbo": "Max",
    "max amazon channel": "Max",
    "apple tv plus": "Apple TV+",
    "apple tv": "Apple TV+",
    "paramount plus": "Paramount+",
    "paramount+ with showtime": "Paramount+",
    "paramount plus essential": "Paramount+",
    "paramount plus premium": "Paramount+",
    "paramount+ amazon channel": "Paramount+",
    "peacock premium": "Peacock",
    "peacock premium plus": "Peacock",
    "showtime amazon channel": "Showtime",
    "starz amazon channel": "Starz",
    "mgm plus": "MGM+",
    "epix": "MGM+",
    "amc plus": "AMC+",
    "britbox amazon channel": "BritBox",
    "pbs masterpiece amazon channel": "PBS Masterpiece",
    "masterpiece": "PBS Masterpiece",
    "crunchyroll amazon channel": "Crunchyroll",
    "shudder amazon channel": "Shudder",
    "acorntv": "Acorn TV",
    "acorn tv amazon channel": "Acorn TV",
}

_LOOKUP: Dict[str, str] = {
    **{name.lower(): name for name in CANONICAL_STREAMERS},
    **STREAMER_SYNONYMS,
}


def _lookup_key(name: str) -> str:
    return " ".join(name.split()).lower()


def normalize_streamer_name(value: Union[str, int, None]) -> Optional[str]:
    """
    Map a provider name (or TMDB provider id) to its canonical label.

    Canonical labels map to themselves, so the function is idempotent.

    Args:
        value: Provider name or provider id

    Returns:
        Canonical streamer name, or None when the provider is not recognised
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return STREAMING_PROVIDERS.get(value)
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    if stripped.isdigit():
        return STREAMING_PROVIDERS.get(int(stripped))
    return _LOOKUP.get(_lookup_key(stripped))


def normalize_streamers(values: Iterable[Union[str, int, None]]) -> List[str]:
    """Normalize a list of provider names, dropping unknowns and duplicates."""
    seen = set()
    result = []
    for value in values:
        canonical = normalize_streamer_name(value)
        if canonical and canonical not in seen:
            seen.add(canonical)
            result.append(canonical)
    return result


def canonical_names_for_ids(provider_ids: Iterable[int]) -> FrozenSet[str]:
    """Resolve selected provider ids to the canonical names used for matching."""
    return frozenset(
        STREAMING_PROVIDERS[provider_id]
        for provider_id in provider_ids
        if provider_id in STREAMING_PROVIDERS
    )
