from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.error import URLError
from urllib.parse import quote

from ytstills.config import FetchSettings
from ytstills.ingest.http import YOUTUBE_HEADERS, fetch_text
from ytstills.ingest.video_id import watch_url
from ytstills.models import ExtractedLink, VideoChapter, VideoMetadata
from ytstills.timecode import parse_timestamp

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s)<>\"]+")
CHAPTER_PATTERN = re.compile(r"^((?:\d{1,2}:)?\d{1,2}:\d{2})\s+(.+)$", re.MULTILINE)
PLAYER_RESPONSE_MARKERS = (
    re.compile(r"var\s+ytInitialPlayerResponse\s*=\s*"),
    re.compile(r"ytInitialPlayerResponse\s*=\s*"),
    re.compile(r"window\[\"ytInitialPlayerResponse\"\]\s*=\s*"),
)
TRAILING_PUNCTUATION = ".,;:!?)"
LINK_CONTEXT_CHARS = 40


def fetch_metadata(video_id: str, settings: FetchSettings | None = None) -> VideoMetadata:
    """Collect title, channel, duration, description and storyboard spec for a video.

    oEmbed supplies the reliable basics; the watch page supplies the rest.
    Either source may fail independently and leaves its fields at defaults.
    """

    fetch = settings or FetchSettings()
    metadata = VideoMetadata(thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg")

    try:
        _apply_oembed(metadata, _fetch_json(_oembed_url(video_id), fetch))
    except (URLError, TimeoutError, ValueError) as exc:
        logger.warning("oEmbed fetch failed for %s: %s", video_id, exc)

    try:
        html = fetch_text(
            watch_url(video_id),
            headers=YOUTUBE_HEADERS,
            timeout_seconds=fetch.timeout_seconds,
            max_retries=fetch.max_retries,
            backoff_seconds=fetch.backoff_seconds,
        )
    except (URLError, TimeoutError) as exc:
        logger.warning("Watch page scrape failed for %s: %s", video_id, exc)
    else:
        player = extract_player_response(html)
        if player is None:
            logger.warning("Watch page for %s carried no player response.", video_id)
        else:
            _apply_player_response(metadata, player)

    metadata.chapters = parse_chapters(metadata.description)
    metadata.links = extract_links(metadata.description)
    return metadata


def extract_player_response(html: str) -> dict[str, Any] | None:
    """Decode the embedded player response JSON object from watch page HTML."""

    decoder = json.JSONDecoder()
    for marker in PLAYER_RESPONSE_MARKERS:
        for match in marker.finditer(html):
            try:
                payload, _ = decoder.raw_decode(html, match.end())
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                return payload
    return None


def extract_storyboard_spec(player: dict[str, Any]) -> str | None:
    renderer = (player.get("storyboards") or {}).get("playerStoryboardSpecRenderer") or {}
    spec = renderer.get("spec")
    return spec if isinstance(spec, str) and spec else None


def parse_chapters(description: str) -> list[VideoChapter]:
    """Parse ``0:00 Intro`` style chapter lines from a description."""

    chapters: list[VideoChapter] = []
    for match in CHAPTER_PATTERN.finditer(description):
        try:
            start_seconds = parse_timestamp(match.group(1))
        except ValueError:
            continue
        chapters.append(VideoChapter(title=match.group(2).strip(), start_seconds=start_seconds))

    chapters.sort(key=lambda chapter: chapter.start_seconds)
    return chapters


def extract_links(text: str) -> list[ExtractedLink]:
    """Return unique URLs in ``text`` with a short surrounding context."""

    links: list[ExtractedLink] = []
    seen: set[str] = set()

    for match in URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(TRAILING_PUNCTUATION)
        if url in seen:
            continue
        seen.add(url)

        start = max(0, match.start() - LINK_CONTEXT_CHARS)
        end = min(len(text), match.start() + len(url) + LINK_CONTEXT_CHARS)
        context = text[start:end].replace("\n", " ").strip()
        links.append(ExtractedLink(url=url, context=context))

    return links


def _oembed_url(video_id: str) -> str:
    return f"https://www.youtube.com/oembed?url={quote(watch_url(video_id), safe='')}&format=json"


def _fetch_json(url: str, fetch: FetchSettings) -> dict[str, Any]:
    body = fetch_text(
        url,
        timeout_seconds=fetch.timeout_seconds,
        max_retries=fetch.max_retries,
        backoff_seconds=fetch.backoff_seconds,
    )
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise ValueError("oEmbed response must be a JSON object.")
    return payload


def _apply_oembed(metadata: VideoMetadata, payload: dict[str, Any]) -> None:
    metadata.title = str(payload.get("title") or metadata.title)
    metadata.channel_name = str(payload.get("author_name") or metadata.channel_name)
    metadata.channel_url = str(payload.get("author_url") or metadata.channel_url)


def _apply_player_response(metadata: VideoMetadata, player: dict[str, Any]) -> None:
    details = player.get("videoDetails") or {}
    if details:
        metadata.description = str(details.get("shortDescription") or "")
        metadata.duration_seconds = _to_int(details.get("lengthSeconds"))
        metadata.view_count = _to_int(details.get("viewCount"))
        if metadata.title == "Unknown" and details.get("title"):
            metadata.title = str(details["title"])
        if metadata.channel_name == "Unknown" and details.get("author"):
            metadata.channel_name = str(details["author"])
        if not metadata.channel_url and details.get("channelId"):
            metadata.channel_url = f"https://www.youtube.com/channel/{details['channelId']}"

    micro = (player.get("microformat") or {}).get("playerMicroformatRenderer") or {}
    metadata.published_date = str(micro.get("publishDate") or "")
    metadata.storyboard_spec = extract_storyboard_spec(player)


def _to_int(raw_value: Any) -> int:
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return 0
