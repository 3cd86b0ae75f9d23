"""Shared HTTP helpers used by the url and maven repository managers.

Encapsulates common request/timeout error handling so managers avoid
duplicating try/except blocks.
"""
from __future__ import annotations

import logging
import os
import sys
import threading
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants, ExitCodes
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def safe_get(url: str, *, context: str, fatal: bool = True, **kwargs: Any) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "maven").
        fatal: Exit with CONNECTION_ERROR on transport failure; otherwise re-raise.
        **kwargs: Passed through to requests.get.

    Returns:
        requests.Response: The HTTP response object.
    """
    return _request("GET", url, context=context, fatal=fatal, **kwargs)


def safe_head(url: str, *, context: str, fatal: bool = True, **kwargs: Any) -> requests.Response:
    """Perform a HEAD request with the same error handling as safe_get."""
    kwargs.setdefault("allow_redirects", True)
    return _request("HEAD", url, context=context, fatal=fatal, **kwargs)


def _request(method: str, url: str, *, context: str, fatal: bool, **kwargs: Any) -> requests.Response:
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action=method,
                    target=safe_target,
                    context=context
                )
            )
        try:
            res = requests.request(method, url, timeout=Constants.REQUEST_TIMEOUT, **kwargs)
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action=method,
                        outcome="success" if res.ok else "http_error",
                        status_code=res.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                        context=context
                    )
                )
            return res
        except requests.Timeout:
            logger.error(
                "%s request timed out after %s seconds",
                context,
                Constants.REQUEST_TIMEOUT,
            )
            if fatal:
                sys.exit(ExitCodes.CONNECTION_ERROR.value)
            raise
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            if fatal:
                sys.exit(ExitCodes.CONNECTION_ERROR.value)
            raise


# In-memory cache for small text documents such as maven-metadata.xml
_http_cache: Dict[str, Tuple[Tuple[int, str], float]] = {}
_http_cache_lock = threading.Lock()


def robust_get_text(url: str, **kwargs: Any) -> Tuple[int, str]:
    """GET a text document with retries and a short-lived cache.

    Returns:
        Tuple of (status_code, text); status 0 when every attempt failed.
    """
    with _http_cache_lock:
        cached = _http_cache.get(url)
        if cached is not None and time.time() - cached[1] < Constants.HTTP_CACHE_TTL_SEC:
            if is_debug_enabled(logger):
                logger.debug("HTTP cache hit", extra=extra_context(
                    event="cache_hit", component="http_client", action="GET", target=safe_url(url)
                ))
            return cached[0]

    last_exception = None
    for attempt in range(Constants.HTTP_RETRY_MAX):
        try:
            response = requests.get(url, timeout=Constants.REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            last_exception = str(exc)
            if is_debug_enabled(logger):
                logger.debug("HTTP request exception", extra=extra_context(
                    event="http_exception", component="http_client", action="GET",
                    outcome="request_exception", attempt=attempt + 1, target=safe_url(url)
                ))
            continue
        result = (response.status_code, response.text)
        # Server errors are worth another attempt and are never cached
        if response.status_code >= 500:
            last_exception = f"HTTP {response.status_code}"
            continue
        with _http_cache_lock:
            _http_cache[url] = (result, time.time())
        return result

    logger.warning("Request failed after %s attempts: %s (%s)",
                   Constants.HTTP_RETRY_MAX, safe_url(url), last_exception)
    return 0, ""


def clear_cache() -> None:
    """Drop all cached text responses."""
    with _http_cache_lock:
        _http_cache.clear()


def download_file(url: str, dest: str, *, context: str) -> Optional[str]:
    """Stream a remote file to ``dest``.

    The body is written to a temporary sibling first and moved into place only
    when complete, so a failed transfer never leaves a truncated file behind.

    Returns:
        None on success, otherwise an error description.
    """
    parent = os.path.dirname(dest)
    if parent:
        os.makedirs(parent, exist_ok=True)
    tmp_path = dest + ".part"
    try:
        with safe_get(url, context=context, fatal=False, stream=True) as res:
            if res.status_code != 200:
                return f"HTTP {res.status_code} downloading {safe_url(url)}"
            num_bytes = 0
            with open(tmp_path, "wb") as fh:
                for chunk in res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
                        num_bytes += len(chunk)
        if num_bytes <= 0:
            os.remove(tmp_path)
            return f"Download returned no data: {safe_url(url)}"
        os.replace(tmp_path, dest)
    except requests.RequestException as exc:
        _remove_quietly(tmp_path)
        return f"Error downloading from URL: {safe_url(url)} details: {exc}"
    except OSError as exc:
        _remove_quietly(tmp_path)
        return f"Unable to write {dest}: {exc}"
    return None


def last_modified_ms(url: str, *, context: str) -> int:
    """Return the Last-Modified time of ``url`` in epoch milliseconds, or -1."""
    try:
        res = safe_head(url, context=context, fatal=False)
    except requests.RequestException:
        return -1
    header = res.headers.get("Last-Modified") if res.status_code == 200 else None
    if not header:
        return -1
    try:
        return int(parsedate_to_datetime(header).timestamp() * 1000)
    except (TypeError, ValueError):
        return -1


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
