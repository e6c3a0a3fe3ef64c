"""Shared test fixtures and configuration for pytest."""
import os

# Blueprint modules build their services at import time
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")

import pytest
from concurrent.futures import Executor, Future
from io import BytesIO
from typing import Callable, Dict, List
from unittest.mock import Mock

import azure.functions as func
from PIL import Image

from tvbingefriend_feed_service.models import FetchResult, Show
from tvbingefriend_feed_service.repos import SupabaseRestClient

SUPABASE_URL = "https://test.supabase.co"
REST_URL = f"{SUPABASE_URL}/rest/v1"


# ===== Executors =====

class InlineExecutor(Executor):
    """Runs submitted callables immediately in the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Queues submitted callables until run_all() is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        while self.pending:
            future, fn, args, kwargs = self.pending.pop(0)
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()


# ===== REST Fixtures =====

@pytest.fixture
def rest_url() -> str:
    return REST_URL


@pytest.fixture
def rest_client() -> SupabaseRestClient:
    """REST client pointed at the mocked Supabase project."""
    return SupabaseRestClient(base_url=SUPABASE_URL, api_key="test-key")


# ===== Sample Data Fixtures =====

@pytest.fixture
def make_show_row() -> Callable[..., Dict]:
    """Factory for shows table rows."""
    def _make(imdb_id: str, **overrides) -> Dict:
        row = {
            'imdb_id': imdb_id,
            'id': int(imdb_id.lstrip('t') or 0),
            'name': f'Show {imdb_id}',
            'first_air_date': '2020-01-01',
            'status': 'Returning Series',
            'imdb_rating': 7.5,
            'vote_average': 7.0,
            'our_score': 80,
            'overview': 'An overview.',
            'poster_url': f'https://image.tmdb.org/t/p/w500/{imdb_id}.jpg',
            'genre_ids': [18],
            'streaming_info': {'US': [{'provider_id': 8, 'provider_name': 'Netflix'}]},
            'number_of_seasons': 2,
            'show_in_discovery': True,
        }
        row.update(overrides)
        return row
    return _make


@pytest.fixture
def sample_show_row(make_show_row) -> Dict:
    """A single show row as returned by PostgREST."""
    return make_show_row(
        'tt0903747',
        name='Breaking Bad',
        first_air_date='2008-01-20',
        status='Ended',
        imdb_rating=9.5,
        vote_average=8.9,
        our_score=97,
        our_description='A chemistry instructor turns to crime.',
        genre_ids=[18, 80],
        streaming_info={'US': [
            {'provider_id': 8, 'provider_name': 'Netflix'},
            {'provider_id': 9, 'provider_name': 'Amazon Prime Video'},
            {'provider_id': 9999, 'provider_name': 'Some Local Service'},
        ]},
        number_of_seasons=5,
        main_cast=['Bryan Cranston', 'Aaron Paul'],
    )


@pytest.fixture
def make_shows() -> Callable[..., List[Show]]:
    """Factory for lists of Show objects with sequential ids."""
    def _make(start: int, count: int, **fields) -> List[Show]:
        return [Show(imdb_id=f'tt{i:07d}', name=f'Show {i}', **fields) for i in range(start, start + count)]
    return _make


@pytest.fixture
def paged_fetcher(make_shows):
    """
    Page fetcher over a fixed catalogue of shows.

    Returns (fetcher, calls); calls records every (offset, limit, sort_by).
    """
    def _build(total: int = 50):
        catalogue = make_shows(1, total)
        calls = []

        def fetcher(offset, limit, sort_by, filters):
            calls.append((offset, limit, sort_by))
            items = catalogue[offset:offset + limit]
            return FetchResult(items=items, has_more=len(items) == limit, next_offset=offset + len(items))

        return fetcher, calls
    return _build


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG image."""
    buffer = BytesIO()
    Image.new('RGB', (4, 6), color=(200, 30, 30)).save(buffer, format='PNG')
    return buffer.getvalue()


# ===== Mock Fixtures =====

@pytest.fixture
def mock_http_request() -> Callable[..., Mock]:
    """Factory for Azure Functions HTTP requests."""
    def _make(params: Dict = None, route_params: Dict = None, headers: Dict = None, body=None) -> Mock:
        req = Mock(spec=func.HttpRequest)
        req.params = params or {}
        req.route_params = route_params or {}
        req.headers = headers or {}
        if isinstance(body, Exception):
            req.get_json.side_effect = body
        else:
            req.get_json.return_value = body
        return req
    return _make
