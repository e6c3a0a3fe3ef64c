"""Exceptions raised by the feed service."""


class FeedServiceError(Exception):
    """Base class for feed service errors."""


class ConfigurationError(FeedServiceError):
    """Required configuration (e.g. Supabase credentials) is missing."""


class TransportError(FeedServiceError):
    """The remote service could not be reached."""


class RequestTimeoutError(TransportError):
    """A request did not complete within its client-side time limit."""


class RemoteResponseError(FeedServiceError):
    """The remote service answered with a non-success status code."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"API Error: {status_code} - {message}" if message else f"API Error: {status_code}")
