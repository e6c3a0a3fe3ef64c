"""HTTP endpoints for show feeds, statuses, counters and filter options."""
import azure.functions as func
import logging
import json
from concurrent.futures import ThreadPoolExecutor

from tvbingefriend_feed_service.models import FetchResult, FilterState, ShowStatus, ShowsView, SortOption
from tvbingefriend_feed_service.services import ConnectionHints, FeedService, ImagePreloader

# Initialize blueprint
bp = func.Blueprint()

# Initialize services (singleton pattern); missing Supabase settings fail here
image_preloader = ImagePreloader()
feed_service = FeedService(image_preloader=image_preloader)
counters_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="nav_counters")

logger = logging.getLogger(__name__)

MAX_LIMIT = 100


def _json_response(body, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(body, default=str),
        status_code=status_code,
        mimetype="application/json"
    )


def _error(message: str, status_code: int) -> func.HttpResponse:
    return _json_response({"error": message}, status_code)


def _int_list(value: str | None) -> list[int]:
    if not value:
        return []
    return [int(part) for part in value.split(",") if part.strip()]


def _parse_page_params(req: func.HttpRequest, view: ShowsView) -> dict:
    """Read offset, limit, sort_by and filters; raises ValueError with a client-facing message."""
    try:
        offset = int(req.params.get('offset', 0))
        limit = int(req.params.get('limit', 20))
    except ValueError:
        raise ValueError("offset and limit must be integers")
    if offset < 0:
        raise ValueError("offset must be >= 0")
    if limit < 1 or limit > MAX_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")

    sort_value = req.params.get('sort_by')
    try:
        sort_by = SortOption(sort_value) if sort_value else view.default_sort
    except ValueError:
        raise ValueError(f"sort_by must be one of: {', '.join(s.value for s in SortOption)}")

    try:
        genre_ids = _int_list(req.params.get('genres'))
        streamer_ids = _int_list(req.params.get('streamers'))
        year_min = req.params.get('year_min')
        year_max = req.params.get('year_max')
        year_range = (int(year_min), int(year_max)) if year_min and year_max else None
    except ValueError:
        raise ValueError("genres, streamers, year_min and year_max must be integers")

    return {
        "offset": offset,
        "limit": limit,
        "sort_by": sort_by,
        "filters": FilterState.create(genre_ids, streamer_ids, year_range),
    }


def _page_response(view: ShowsView, result: FetchResult) -> func.HttpResponse:
    if not result.ok:
        logger.error(f"Failed to fetch {view.value} page: {result.error}")
        return _json_response({"error": str(result.error), "next_offset": result.next_offset}, 502)

    return _json_response({
        "view": view.value,
        "count": len(result.items),
        "has_more": result.has_more,
        "next_offset": result.next_offset,
        "items": [show.to_dict() for show in result.items],
    })


@bp.route(route="shows/discover", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_discover_shows(req: func.HttpRequest) -> func.HttpResponse:
    """
    Get a page of the Discover feed.

    Query Parameters:
        - offset: Raw row offset (default: 0)
        - limit: Page size (default: 20, max: 100)
        - sort_by: latest, rating, recently_added, best_rated or by_rating
        - genres: Comma-separated genre ids (any-of)
        - streamers: Comma-separated provider ids (any-of)
        - year_min, year_max: Inclusive first-air year range
        - user_id: Exclude shows this user already has a status for
    """
    try:
        try:
            page = _parse_page_params(req, ShowsView.DISCOVER)
        except ValueError as e:
            return _error(str(e), 400)

        result = feed_service.fetch_page(ShowsView.DISCOVER, req.params.get('user_id'), **page)
        return _page_response(ShowsView.DISCOVER, result)

    except Exception as e:
        logger.error(f"Error getting discover shows: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


@bp.route(route="users/{user_id}/shows/{view}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_user_shows(req: func.HttpRequest) -> func.HttpResponse:
    """
    Get a page of one of the user's feeds.

    Route: view is discover, watchlist, loved_it, liked_it, all_rated or new_seasons.
    Query parameters are the same as for the Discover feed.
    """
    try:
        user_id = req.route_params.get('user_id')
        if not user_id:
            return _error("user_id is required", 400)

        try:
            view = ShowsView(req.route_params.get('view'))
        except ValueError:
            return _error(f"view must be one of: {', '.join(v.value for v in ShowsView)}", 400)

        try:
            page = _parse_page_params(req, view)
        except ValueError as e:
            return _error(str(e), 400)

        result = feed_service.fetch_page(view, user_id, **page)
        return _page_response(view, result)

    except Exception as e:
        logger.error(f"Error getting user shows: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


@bp.route(route="users/{user_id}/shows/{imdb_id}/status", methods=["PUT"], auth_level=func.AuthLevel.ANONYMOUS)
def update_show_status(req: func.HttpRequest) -> func.HttpResponse:
    """
    Set the user's status for a show.

    Body: {"status": "watchlist" | "loved_it" | "liked_it" | "not_for_me"}
    """
    try:
        user_id = req.route_params.get('user_id')
        imdb_id = req.route_params.get('imdb_id')
        if not user_id or not imdb_id:
            return _error("user_id and imdb_id are required", 400)

        try:
            body = req.get_json()
        except ValueError:
            return _error("Request body must be JSON", 400)

        try:
            status = ShowStatus((body or {}).get('status'))
        except ValueError:
            return _error(f"status must be one of: {', '.join(s.value for s in ShowStatus)}", 400)

        error = feed_service.update_show_status(user_id, imdb_id, status)
        if error is not None:
            return _json_response({"error": str(error), "imdb_id": imdb_id}, 502)

        return _json_response({"user_id": user_id, "imdb_id": imdb_id, "status": status.value})

    except Exception as e:
        logger.error(f"Error updating show status: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


def _counters_response(user_id: str | None) -> func.HttpResponse:
    counters = feed_service.create_counters(executor=counters_executor)
    counts = counters.set_user(user_id)
    return _json_response({"user_id": user_id, "counts": counts.to_dict()})


@bp.route(route="users/{user_id}/counters", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_user_counters(req: func.HttpRequest) -> func.HttpResponse:
    """Get navigation counts for a user."""
    try:
        user_id = req.route_params.get('user_id')
        if not user_id:
            return _error("user_id is required", 400)
        return _counters_response(user_id)

    except Exception as e:
        logger.error(f"Error getting counters: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


# noinspection PyUnusedLocal
@bp.route(route="counters", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_anonymous_counters(req: func.HttpRequest) -> func.HttpResponse:
    """Get navigation counts without a user (only discover is counted)."""
    try:
        return _counters_response(None)

    except Exception as e:
        logger.error(f"Error getting counters: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


# noinspection PyUnusedLocal
@bp.route(route="filters/options", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_filter_options(req: func.HttpRequest) -> func.HttpResponse:
    """Get the genres, year range and streamers available for filtering Discover."""
    try:
        options, error = feed_service.fetch_filter_options()
        if error is not None:
            logger.warning(f"Filter options incomplete: {error}")
            options["warning"] = str(error)
        return _json_response(options)

    except Exception as e:
        logger.error(f"Error getting filter options: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


@bp.route(route="images/optimized", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_optimized_image_url(req: func.HttpRequest) -> func.HttpResponse:
    """
    Choose the image URL a client should load.

    Query Parameters:
        - url: Original poster URL

    Reads the ECT, Downlink and Save-Data client-hint headers.
    """
    try:
        url = req.params.get('url')
        if not url:
            return _error("url is required", 400)

        hints = ConnectionHints.from_headers(req.headers)
        return _json_response({
            "url": url,
            "optimized_url": image_preloader.best_url(url, hints),
            "batch_concurrency": hints.batch_concurrency(),
        })

    except Exception as e:
        logger.error(f"Error optimizing image url: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


# noinspection PyUnusedLocal
@bp.route(route="feeds/health", methods=["GET"])
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint."""
    return _json_response({
        "status": "healthy",
        "service": "tv-feed-service",
        "version": "1.0.0",
        "image_preloader": image_preloader.stats(),
    })
