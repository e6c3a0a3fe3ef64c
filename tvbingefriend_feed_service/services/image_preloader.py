"""Background preloading of poster images.

Images are downloaded through a bounded, FIFO connection pool. URLs on the
poster CDN are rewritten to a smaller width and the most compressed format the
runtime can decode. A failed load is retried once against the original URL
and the preload always resolves (with the original URL as last resort).
"""
import logging
import re
import threading
import time
from collections import OrderedDict, deque
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass
from io import BytesIO
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar

import requests
from PIL import Image, features
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tvbingefriend_feed_service.config import get_image_cdn_host, get_image_max_connections
from tvbingefriend_feed_service.models import Show

logger = logging.getLogger(__name__)

T = TypeVar("T")

OPTIMIZED_WIDTH = "w300"
_SIZE_SEGMENT = re.compile(r"/(w\d+|original)/")

# Most compressed first
FORMAT_PREFERENCE = ("avif", "webp")
FORMAT_QUALITY = {"avif": 75, "webp": 80}

# RFC 9218 urgency: lower is more urgent
PRIORITY_HEADERS = {"high": "u=1", "low": "u=5"}

NEAR_TERM_COUNT = 6
MEDIUM_TERM_COUNT = 12

# Entries kept in the URL -> variants LRU
VARIANT_CACHE_SIZE = 1024


@dataclass(frozen=True)
class ConnectionHints:
    """Network conditions reported by the client (HTTP client hints)."""

    effective_type: str = "4g"
    downlink: float = 10.0
    save_data: bool = False

    @classmethod
    def from_headers(cls, headers: Optional[Mapping[str, str]]) -> "ConnectionHints":
        """Read the ECT, Downlink and Save-Data request headers."""
        lowered = {k.lower(): v for k, v in (headers or {}).items()}
        try:
            downlink = float(lowered.get("downlink", 10.0))
        except ValueError:
            downlink = 10.0
        return cls(
            effective_type=(lowered.get("ect") or "4g").strip().lower(),
            downlink=downlink,
            save_data=(lowered.get("save-data") or "").strip().lower() == "on",
        )

    @property
    def constrained(self) -> bool:
        """Save-data or the slowest connection class."""
        return self.save_data or self.effective_type == "slow-2g"

    def batch_concurrency(self) -> int:
        if self.constrained:
            return 4
        if self.effective_type == "2g":
            return 6
        if self.downlink > 10:
            return 12
        return 8


@dataclass(frozen=True)
class ImageVariants:
    original: str
    resized: str
    webp: str
    avif: str

    def for_format(self, image_format: Optional[str]) -> str:
        if image_format == "avif":
            return self.avif
        if image_format == "webp":
            return self.webp
        return self.resized


def build_variants(url: str, cdn_host: str) -> ImageVariants:
    """URLs for each format; identical to the input for hosts other than the CDN."""
    if cdn_host not in url:
        return ImageVariants(original=url, resized=url, webp=url, avif=url)
    resized = _SIZE_SEGMENT.sub(f"/{OPTIMIZED_WIDTH}/", url, count=1)
    return ImageVariants(
        original=url,
        resized=resized,
        webp=f"{resized}?format=webp&quality={FORMAT_QUALITY['webp']}",
        avif=f"{resized}?format=avif&quality={FORMAT_QUALITY['avif']}",
    )


def detect_decoder_formats() -> Tuple[str, ...]:
    """Modern formats Pillow can decode here, most compressed first."""
    return tuple(
        fmt for fmt in FORMAT_PREFERENCE
        if fmt in features.modules and features.check_module(fmt)
    )


def split_priority_buckets(
        items: Sequence[T],
        near: int = NEAR_TERM_COUNT,
        medium: int = MEDIUM_TERM_COUNT
) -> Tuple[List[T], List[T], List[T]]:
    """Split items into near-term, medium-term and long-tail buckets."""
    items = list(items)
    return items[:near], items[near:near + medium], items[near + medium:]


class ConnectionLimiter:
    """Caps concurrent downloads; waiters are released in FIFO order."""

    def __init__(self, max_connections: int = 12):
        self.max_connections = max_connections
        self._lock = threading.Lock()
        self._active = 0
        self._waiters: Deque[threading.Event] = deque()

    def acquire(self) -> None:
        with self._lock:
            if self._active < self.max_connections and not self._waiters:
                self._active += 1
                return
            waiter = threading.Event()
            self._waiters.append(waiter)
        # Slot is handed over by release() without decrementing _active
        waiter.wait()

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                self._waiters.popleft().set()
            else:
                self._active -= 1

    @contextmanager
    def slot(self):
        self.acquire()
        try:
            yield
        finally:
            self.release()

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return len(self._waiters)


class ImagePreloader:
    """
    Preloads poster images with format negotiation and a connection ceiling.

    One instance owns its caches and pools, so independent instances (and
    tests) never share state. Downloads run on `executor`; delayed batch
    loops run on `scheduler`, which must be a different pool because they
    block until their downloads finish.
    """

    def __init__(
            self,
            max_connections: Optional[int] = None,
            cdn_host: Optional[str] = None,
            session: Optional[requests.Session] = None,
            supported_formats: Optional[Iterable[str]] = None,
            hints: Optional[ConnectionHints] = None,
            executor: Optional[Executor] = None,
            scheduler: Optional[Executor] = None,
            timeout: float = 10.0,
            variant_cache_size: int = VARIANT_CACHE_SIZE
    ):
        self.max_connections = max_connections or get_image_max_connections()
        self.cdn_host = cdn_host or get_image_cdn_host()
        self.hints = hints or ConnectionHints()
        self.timeout = timeout
        self.limiter = ConnectionLimiter(self.max_connections)

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=self.max_connections)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

        self._supported_formats = tuple(supported_formats) if supported_formats is not None else None
        # Batch loops block on downloads, so they never share the download pool
        self._owned_pools: List[Executor] = []
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=self.max_connections, thread_name_prefix="image_preload")
            self._owned_pools.append(executor)
        if scheduler is None:
            scheduler = ThreadPoolExecutor(max_workers=2, thread_name_prefix="image_schedule")
            self._owned_pools.append(scheduler)
        self._executor = executor
        self._scheduler = scheduler

        self._lock = threading.Lock()
        self.variant_cache_size = variant_cache_size
        self._variant_cache: "OrderedDict[str, ImageVariants]" = OrderedDict()
        self._preload_cache: Dict[str, Future] = {}
        self._loaded: Set[str] = set()

    @property
    def supported_formats(self) -> Tuple[str, ...]:
        if self._supported_formats is None:
            self._supported_formats = detect_decoder_formats()
            logger.info(f"Image decoder formats available: {self._supported_formats or 'none'}")
        return self._supported_formats

    def _variants(self, url: str) -> ImageVariants:
        with self._lock:
            variants = self._variant_cache.get(url)
            if variants is not None:
                self._variant_cache.move_to_end(url)
                return variants
            variants = build_variants(url, self.cdn_host)
            self._variant_cache[url] = variants
            if len(self._variant_cache) > self.variant_cache_size:
                self._variant_cache.popitem(last=False)
            return variants

    def best_url(self, url: str, hints: Optional[ConnectionHints] = None) -> str:
        """
        Choose the URL to load for an image.

        Args:
            url: Original image URL
            hints: Client network conditions (defaults to the instance hints)

        Returns:
            The most compressed supported variant, or the resized original
            when the client is on save-data or the slowest connection
        """
        if not url:
            return url
        hints = hints or self.hints
        variants = self._variants(url)
        if hints.constrained:
            return variants.resized
        for image_format in FORMAT_PREFERENCE:
            if image_format in self.supported_formats:
                return variants.for_format(image_format)
        return variants.resized

    def _fetch(self, url: str, priority: str) -> bool:
        """Download and decode-check one image."""
        try:
            response = self.session.get(
                url,
                headers={"Priority": PRIORITY_HEADERS.get(priority, PRIORITY_HEADERS["low"])},
                timeout=self.timeout,
            )
            response.raise_for_status()
            with Image.open(BytesIO(response.content)) as image:
                image.verify()
            return True
        except Exception as e:
            logger.warning(f"Failed to preload {url}: {e}")
            return False

    def _load(self, url: str, priority: str, hints: ConnectionHints) -> str:
        try:
            chosen = self.best_url(url, hints)
            with self.limiter.slot():
                if self._fetch(chosen, priority):
                    with self._lock:
                        self._loaded.update({url, chosen})
                    logger.debug(f"Preloaded {'optimized' if chosen != url else 'original'} image: {url}")
                    return chosen
                # One retry against the unmodified original
                if chosen != url and self._fetch(url, priority):
                    with self._lock:
                        self._loaded.add(url)
                    return url
        except Exception as e:
            logger.error(f"Unexpected error preloading {url}: {e}", exc_info=True)
        return url

    def preload(self, url: str, priority: str = "low", hints: Optional[ConnectionHints] = None) -> Future:
        """
        Preload one image; repeated calls for the same URL share one future.

        The future never fails: it resolves with the URL that loaded, or the
        original URL when every attempt failed.
        """
        hints = hints or self.hints
        with self._lock:
            future = self._preload_cache.get(url)
            if future is not None:
                return future
            future = Future()
            self._preload_cache[url] = future

        def run():
            future.set_result(self._load(url, priority, hints))

        try:
            self._executor.submit(run)
        except RuntimeError as e:
            # Executor shut down
            logger.warning(f"Image preloader unavailable for {url}: {e}")
            future.set_result(url)
        return future

    def preload_show_images(
            self,
            shows: Iterable[Show],
            priority: str = "low",
            hints: Optional[ConnectionHints] = None
    ) -> None:
        """
        Preload the posters of shows in network-sized batches.

        Blocks until every batch has settled.
        """
        hints = hints or self.hints
        urls = [show.poster for show in shows if show.poster]
        if not urls:
            logger.debug("No poster URLs to preload")
            return

        concurrency = hints.batch_concurrency()
        logger.info(f"Preloading {len(urls)} show images (priority: {priority}, batch size: {concurrency})")
        for i in range(0, len(urls), concurrency):
            wait([self.preload(url, priority, hints) for url in urls[i:i + concurrency]])
            if hints.constrained:
                time.sleep(0.05)
        logger.info(f"✓ Completed preloading {len(urls)} images")

    def preload_next_batch_images(
            self,
            shows: Sequence[Show],
            delay: float = 1.0,
            priority: str = "low",
            hints: Optional[ConnectionHints] = None
    ) -> Future:
        """Preload posters in the background after a delay."""
        def run():
            if delay > 0:
                time.sleep(delay)
            try:
                self.preload_show_images(shows, priority, hints)
            except Exception as e:
                logger.error(f"Error in delayed image preload: {e}", exc_info=True)

        return self._scheduler.submit(run)

    def preload_in_buckets(self, shows: Sequence[Show], hints: Optional[ConnectionHints] = None) -> List[Future]:
        """
        Schedule near-term posters now at high priority and the rest later at low priority.
        """
        near, medium, tail = split_priority_buckets(shows)
        futures = []
        for bucket, delay, priority in ((near, 0.0, "high"), (medium, 0.2, "low"), (tail, 1.0, "low")):
            if bucket:
                futures.append(self.preload_next_batch_images(bucket, delay, priority, hints))
        return futures

    def is_image_preloaded(self, url: str) -> bool:
        with self._lock:
            if url in self._loaded:
                return True
        return self.best_url(url) in self._loaded

    def clear(self) -> None:
        with self._lock:
            self._variant_cache.clear()
            self._preload_cache.clear()
            self._loaded.clear()
        logger.info("Image preload caches cleared")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "formats_cached": len(self._variant_cache),
                "preload_cache": len(self._preload_cache),
                "loaded_images": len(self._loaded),
                "pending": sum(1 for f in self._preload_cache.values() if not f.done()),
                "active_connections": self.limiter.active,
                "queued_connections": self.limiter.queued,
            }

    def shutdown(self) -> None:
        """Stop the pools this preloader created; injected executors are left running."""
        for pool in self._owned_pools:
            pool.shutdown(wait=False)
