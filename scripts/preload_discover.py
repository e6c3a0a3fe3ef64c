"""
Warm-up script that pages through the Discover feed and preloads poster images.

Usage:
    # First three pages with default sort
    python scripts/preload_discover.py

    # Filtered, more pages, no image downloads
    python scripts/preload_discover.py --pages 5 --genres 18,80 --streamers 8 --no-images
"""

import sys
from pathlib import Path

# Add parent directory to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import argparse
import logging

from tvbingefriend_feed_service.models import FilterState, ShowsView, SortOption
from tvbingefriend_feed_service.services import ConnectionHints, FeedService, ImagePreloader, ShowsPaginator

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def parse_id_list(value: str) -> list:
    """Parse a comma-separated list of integer ids."""
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated integers, got '{value}'")


def warm_discover(paginator: ShowsPaginator, pages: int, filters: FilterState) -> dict:
    """
    Load up to `pages` pages through the paginator, consuming preloads as they land.

    Args:
        paginator: Discover paginator
        pages: Maximum number of pages to load
        filters: Filters for the feed

    Returns:
        Summary with pages loaded, shows, next offset, has_more and error (or None)
    """
    result = paginator.reset(filters)
    loaded = 1 if result.ok else 0
    error = result.error

    while error is None and loaded < pages and paginator.state.has_more:
        paginator.wait_for_preload()
        result = paginator.fetch_more()
        if result is None:
            break
        if not result.ok:
            error = result.error
            break
        loaded += 1
        logger.info(f"✓ Page {loaded}: {len(result.items)} shows (next offset: {result.next_offset})")

    state = paginator.state
    return {
        "pages": loaded,
        "shows": len(state.items),
        "next_offset": state.offset,
        "has_more": state.has_more,
        "error": error,
    }


def main():
    """Main execution function."""
    parser = argparse.ArgumentParser(description="Page through the Discover feed and preload poster images")
    parser.add_argument("--pages", type=int, default=3, help="Number of pages to load (default: 3)")
    parser.add_argument("--limit", type=int, default=None, help="Shows per page (default: FEED_PAGE_SIZE)")
    parser.add_argument(
        "--sort-by",
        type=str,
        default=SortOption.LATEST.value,
        choices=[s.value for s in SortOption],
        help="Sort option (default: latest)",
    )
    parser.add_argument("--genres", type=parse_id_list, default=[], help="Comma-separated genre ids")
    parser.add_argument("--streamers", type=parse_id_list, default=[], help="Comma-separated provider ids")
    parser.add_argument("--user-id", type=str, default=None, help="Exclude shows this user already has")
    parser.add_argument(
        "--connection",
        type=str,
        default="4g",
        choices=["slow-2g", "2g", "3g", "4g"],
        help="Effective connection type used for image batching (default: 4g)",
    )
    parser.add_argument("--no-images", action="store_true", help="Skip poster downloads")
    args = parser.parse_args()

    if args.pages < 1:
        logger.error("Error: --pages must be at least 1")
        sys.exit(1)

    logger.info("=" * 70)
    logger.info("DISCOVER FEED WARM-UP")
    logger.info("=" * 70)
    logger.info(f"Pages: {args.pages}")
    logger.info(f"Sort by: {args.sort_by}")
    logger.info(f"Genres: {args.genres or 'any'}")
    logger.info(f"Streamers: {args.streamers or 'any'}")
    logger.info(f"Preload images: {not args.no_images}")
    logger.info("=" * 70)

    preloader = None
    paginator = None
    try:
        service = FeedService()
        paginator = service.create_paginator(
            ShowsView.DISCOVER, args.user_id, limit=args.limit, sort_by=SortOption(args.sort_by)
        )
        filters = FilterState.create(genre_ids=args.genres, streamer_ids=args.streamers)

        # Step 1: Page through the feed
        logger.info("\nStep 1: Loading Discover pages...")
        summary = warm_discover(paginator, args.pages, filters)
        if summary["error"] is not None:
            logger.error(f"Error loading Discover feed: {summary['error']}")
            sys.exit(1)
        logger.info(f"✓ Loaded {summary['shows']} shows in {summary['pages']} pages")

        # Step 2: Preload posters
        if not args.no_images:
            logger.info("\nStep 2: Preloading poster images...")
            preloader = ImagePreloader(hints=ConnectionHints(effective_type=args.connection))
            preloader.preload_show_images(paginator.items)
            stats = preloader.stats()
            logger.info(f"✓ Loaded {stats['loaded_images']} of {stats['preload_cache']} images")

        logger.info("\n" + "=" * 70)
        logger.info("✓ WARM-UP COMPLETE")
        logger.info("=" * 70)
        logger.info(f"Next offset: {summary['next_offset']} (has more: {summary['has_more']})")
        return summary

    except Exception as e:
        logger.error(f"Error during warm-up: {str(e)}", exc_info=True)
        sys.exit(1)

    finally:
        if paginator is not None:
            paginator.close()
        if preloader is not None:
            preloader.shutdown()


if __name__ == "__main__":
    main()
