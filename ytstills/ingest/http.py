from __future__ import annotations

import logging
import time
from urllib import request
from urllib.error import HTTPError, URLError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 1.0

YOUTUBE_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


def fetch_text(
    url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
) -> str:
    """GET ``url`` and return the decoded body, retrying 429/5xx and network errors.

    403/404 and other client errors are raised immediately as ``HTTPError``.
    """

    req = request.Request(url, headers=headers or {}, method="GET")
    attempts = max(0, max_retries) + 1

    for attempt in range(attempts):
        try:
            with request.urlopen(req, timeout=timeout_seconds) as response:
                charset = response.headers.get_content_charset() or "utf-8"
                return response.read().decode(charset, errors="replace")
        except HTTPError as exc:
            if not _is_retryable_status(exc.code) or attempt == attempts - 1:
                raise
            reason = f"HTTP {exc.code}"
        except (URLError, TimeoutError) as exc:
            if attempt == attempts - 1:
                raise
            reason = str(exc)

        delay = backoff_seconds * (2**attempt)
        logger.warning(
            "Fetch failed for %s (%s); retrying in %.1fs (attempt %d/%d).",
            url,
            reason,
            delay,
            attempt + 1,
            attempts - 1,
        )
        time.sleep(delay)

    raise RuntimeError("fetch_text exhausted its attempts without a result.")


def _is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500
