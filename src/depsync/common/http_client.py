"""HTTP access for repository indexes.

Wraps ``requests.get`` with a timeout, retries with exponential backoff on
connection failures and 5xx responses, and a short-lived in-memory response
cache. Callers either get a ``(status, headers, text)`` triple from
``robust_get`` or the body from ``get_text``, which raises TransportError.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

import requests

from depsync.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from depsync.constants import Constants
from depsync.errors import TransportError

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, str], str]

# (method, url, headers) -> (response, stored at)
_http_cache: Dict[str, Tuple[Response, float]] = {}
_cache_lock = threading.Lock()


def _cache_key(url: str, headers: Optional[Dict[str, str]]) -> str:
    return f"GET:{url}:{sorted(headers.items()) if headers else ''}"


def _cached(key: str) -> Optional[Response]:
    with _cache_lock:
        entry = _http_cache.get(key)
    if entry is None:
        return None
    response, stored_at = entry
    if time.time() - stored_at >= Constants.HTTP_CACHE_TTL_SEC:
        return None
    return response


def clear_cache() -> None:
    """Drop every cached response."""
    with _cache_lock:
        _http_cache.clear()


def _trace(message: str, target: str, **fields: Any) -> None:
    if is_debug_enabled(logger):
        logger.debug(
            message,
            extra=extra_context(component="http_client", action="GET", target=target, **fields),
        )


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    retries: Optional[int] = None,
    **kwargs: Any
) -> Response:
    """GET ``url`` with retries and caching.

    Returns:
        Tuple of (status_code, headers_dict, body_text). A status code of 0
        means every attempt failed before a usable response arrived; the body
        then describes the last failure.
    """
    key = _cache_key(url, headers)
    target = safe_url(url)
    timeout = Constants.REQUEST_TIMEOUT if timeout is None else timeout
    attempts = Constants.HTTP_RETRY_MAX if retries is None else max(1, retries)

    cached = _cached(key)
    if cached is not None:
        _trace("HTTP cache hit", target, event="cache_hit")
        return cached

    failure = "no attempt made"
    for attempt in range(1, attempts + 1):
        if attempt > 1:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 2)))
        _trace("HTTP request", target, event="http_request", attempt=attempt)
        with Timer() as t:
            try:
                response = requests.get(url, timeout=timeout, headers=headers, **kwargs)
            except requests.Timeout:
                failure = "timeout"
                _trace("HTTP timeout", target, event="http_exception", outcome="timeout", attempt=attempt)
                continue
            except requests.RequestException as exc:
                failure = str(exc)
                _trace("HTTP request exception", target, event="http_exception", outcome="request_exception", attempt=attempt)
                continue

        if response.status_code >= 500:
            failure = f"server error {response.status_code}"
            _trace("HTTP server error", target, event="http_response", outcome="retry", status_code=response.status_code)
            continue

        result: Response = (response.status_code, dict(response.headers), response.text)
        with _cache_lock:
            _http_cache[key] = (result, time.time())
        _trace(
            "HTTP response",
            target,
            event="http_response",
            outcome="success",
            status_code=response.status_code,
            duration_ms=t.duration_ms(),
        )
        return result

    return 0, {}, f"Request failed after {attempts} attempts: {failure}"


def get_text(url: str, *, headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> str:
    """Fetch ``url`` and return its body; any non-200 outcome raises TransportError."""
    status_code, _, text = robust_get(url, headers=headers, **kwargs)
    if status_code == 200:
        return text
    if status_code == 0:
        logger.warning("Fetching %s failed: %s", safe_url(url), text)
        raise TransportError(safe_url(url), text)
    raise TransportError(safe_url(url), f"unexpected status {status_code}")
