from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

VIDEO_ID_PATTERN = re.compile(r"^[\w-]{11}$")


def extract_video_id(url_or_id: str) -> str:
    """Extract the 11-character video id from a bare id or a watch/short/embed URL."""

    candidate = url_or_id.strip()
    if VIDEO_ID_PATTERN.match(candidate):
        return candidate

    parsed = urlparse(candidate)
    if parsed.scheme in {"http", "https"} and parsed.netloc:
        query_ids = parse_qs(parsed.query).get("v")
        if query_ids and VIDEO_ID_PATTERN.match(query_ids[0]):
            return query_ids[0]

        path_parts = [part for part in parsed.path.split("/") if part]
        if path_parts and VIDEO_ID_PATTERN.match(path_parts[-1]):
            return path_parts[-1]

    raise ValueError(f"Could not extract video ID from: {url_or_id}")


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
