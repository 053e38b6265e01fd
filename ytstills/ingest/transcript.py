from __future__ import annotations

import logging

from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from ytstills.models import TranscriptSegment

logger = logging.getLogger(__name__)


def fetch_transcript(video_id: str, language: str = "en") -> list[TranscriptSegment]:
    """Fetch manual or auto-generated captions; returns an empty list when none are available."""

    logger.info("Fetching transcript for video %s (lang: %s)", video_id, language)

    try:
        fetched = YouTubeTranscriptApi().fetch(video_id, languages=[language])
    except (CouldNotRetrieveTranscript, OSError) as exc:
        logger.warning("Could not fetch transcript for %s: %s", video_id, exc)
        return []

    segments = [
        TranscriptSegment(
            text=snippet.text,
            start_seconds=round(float(snippet.start), 2),
            duration_seconds=round(float(snippet.duration), 2),
        )
        for snippet in fetched
    ]
    segments.sort(key=lambda segment: segment.start_seconds)
    return segments


def full_text(transcript: list[TranscriptSegment]) -> str:
    return " ".join(segment.text.strip() for segment in transcript if segment.text.strip())
