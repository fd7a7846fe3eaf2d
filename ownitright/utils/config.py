"""Client configuration read from environment variables."""

import os


def _get_float(name: str, default: float) -> float:
    """Read a float env var, falling back to the default on bad input."""
    try:
        return float(os.environ.get(name, str(default)))
    except (ValueError, TypeError):
        return default


def _get_int(name: str, default: int) -> int:
    """Read an int env var, falling back to the default on bad input."""
    try:
        return int(os.environ.get(name, str(default)))
    except (ValueError, TypeError):
        return default


class ClientConfig:
    """Settings for the REST collaborator, query cache and polling."""

    API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:5000").rstrip("/")
    API_TIMEOUT_SECONDS = _get_float("API_TIMEOUT_SECONDS", 15.0)
    QUERY_STALE_TIME_SECONDS = _get_float("QUERY_STALE_TIME_SECONDS", 300.0)
    QUERY_RETRY_COUNT = _get_int("QUERY_RETRY_COUNT", 1)
    NOTIFICATION_POLL_SECONDS = _get_float("NOTIFICATION_POLL_SECONDS", 30.0)
    NOTIFICATION_PAGE_SIZE = _get_int("NOTIFICATION_PAGE_SIZE", 20)
