"""Application configuration"""

import json
import os
from pathlib import Path


def _get_config_value(key: str, default: str | None = None) -> str | None:
    """
    Get configuration value from environment or local.settings.json.

    Priority:
    1. Environment variable
    2. local.settings.json (Values.key)
    3. Default value

    Args:
        key: Configuration key name
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    # Try environment variable first
    value = os.getenv(key)
    if value:
        return value

    # Try local.settings.json
    project_root = Path(__file__).resolve().parent.parent
    local_settings_path = project_root / "local.settings.json"

    if local_settings_path.exists():
        try:
            with open(local_settings_path) as f:
                settings = json.load(f)
                value = settings.get("Values", {}).get(key)
                if value:
                    return value
        except (json.JSONDecodeError, KeyError):
            pass

    return default


def _get_int_config_value(key: str, default: int) -> int:
    """Get an integer configuration value, falling back to default on bad input."""
    value = _get_config_value(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_supabase_url() -> str | None:
    """
    Get the Supabase project URL (without the /rest/v1 suffix).

    Returns:
        Project URL or None when not configured
    """
    return _get_config_value("SUPABASE_URL")


def get_supabase_key() -> str | None:
    """
    Get the Supabase API key sent in the apikey and Authorization headers.

    Returns:
        API key or None when not configured
    """
    return _get_config_value("SUPABASE_KEY")


def get_image_cdn_host() -> str:
    """
    Get the host name of the poster image CDN.

    Returns:
        CDN host (default: image.tmdb.org)
    """
    return _get_config_value("IMAGE_CDN_HOST", default="image.tmdb.org") or "image.tmdb.org"


def get_image_max_connections() -> int:
    """
    Get the ceiling on concurrent image downloads.

    Returns:
        Maximum concurrent image loads (default: 12)
    """
    return _get_int_config_value("IMAGE_MAX_CONNECTIONS", 12)


def get_default_page_size() -> int:
    """
    Get the default number of shows per feed page.

    Returns:
        Page size (default: 20)
    """
    return _get_int_config_value("FEED_PAGE_SIZE", 20)
