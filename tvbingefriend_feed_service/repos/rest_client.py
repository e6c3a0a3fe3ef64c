"""Thin client for the Supabase (PostgREST) REST interface."""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tvbingefriend_feed_service.config import get_supabase_key, get_supabase_url
from tvbingefriend_feed_service.errors import (
    ConfigurationError,
    RemoteResponseError,
    RequestTimeoutError,
    TransportError,
)

logger = logging.getLogger(__name__)

# PostgREST allows repeated keys (first_air_date=gte...&first_air_date=lte...)
QueryParams = Sequence[Tuple[str, Any]]


class SupabaseRestClient:
    """
    Client for the tables exposed by PostgREST under /rest/v1.

    Raises TransportError, RequestTimeoutError or RemoteResponseError; callers
    in the repository layer turn these into error-carrying results.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None):
        base_url = base_url or get_supabase_url()
        api_key = api_key or get_supabase_key()
        if not base_url or not api_key:
            raise ConfigurationError(
                "Supabase is not configured. Set the SUPABASE_URL and SUPABASE_KEY environment variables."
            )

        self.base_url = base_url.rstrip("/")
        self.rest_url = f"{self.base_url}/rest/v1"

        # Configure session with retries
        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            # Hand the last 5xx/429 back as a response so it keeps its status code
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        # noinspection HttpUrlsUsage
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def _request(
            self,
            method: str,
            table: str,
            params: Optional[QueryParams] = None,
            json_body: Optional[Any] = None,
            headers: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None
    ) -> requests.Response:
        url = f"{self.rest_url}/{table}"
        try:
            response = self.session.request(
                method,
                url,
                params=list(params or []),
                json=json_body,
                headers=headers,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(f"{method} {table} timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise TransportError(f"{method} {table} failed: {e}") from e

        if not response.ok:
            raise RemoteResponseError(response.status_code, response.text)
        return response

    @staticmethod
    def _json(response: requests.Response) -> List[Dict[str, Any]]:
        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteResponseError(response.status_code, f"invalid JSON body: {e}") from e
        if isinstance(data, dict):
            return [data]
        return data or []

    def select(self, table: str, params: QueryParams, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        GET rows from a table.

        Args:
            table: Table name (e.g. 'shows')
            params: PostgREST query parameters (select, filters, order, limit, offset)
            timeout: Optional client-side timeout in seconds

        Returns:
            List of row dicts
        """
        response = self._request("GET", table, params=params, timeout=timeout)
        return self._json(response)

    def count(self, table: str, params: QueryParams, timeout: Optional[float] = None) -> int:
        """
        Count matching rows with a HEAD request and Prefer: count=exact.

        Returns:
            Total row count parsed from the Content-Range header
        """
        response = self._request(
            "HEAD", table, params=params, headers={"Prefer": "count=exact"}, timeout=timeout
        )
        content_range = response.headers.get("Content-Range", "")
        _, _, total = content_range.partition("/")
        try:
            return int(total)
        except ValueError:
            raise RemoteResponseError(
                response.status_code, f"unexpected Content-Range header: {content_range!r}"
            ) from None

    def upsert(
            self,
            table: str,
            row: Dict[str, Any],
            on_conflict: str,
            timeout: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """
        Insert a row, or update it when the unique key already exists.

        Args:
            table: Table name
            row: Row values
            on_conflict: Comma-separated columns of the unique constraint
            timeout: Client-side timeout in seconds

        Returns:
            The stored row(s)
        """
        response = self._request(
            "POST",
            table,
            params=[("on_conflict", on_conflict)],
            json_body=row,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
            timeout=timeout,
        )
        return self._json(response)

    def update(
            self,
            table: str,
            params: QueryParams,
            values: Dict[str, Any],
            timeout: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """PATCH rows matching params with values."""
        response = self._request(
            "PATCH",
            table,
            params=params,
            json_body=values,
            headers={"Prefer": "return=representation"},
            timeout=timeout,
        )
        return self._json(response)
