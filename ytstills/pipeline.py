from __future__ import annotations

import logging
from pathlib import Path

from ytstills.config import Settings
from ytstills.frames.extract import FrameExtractor
from ytstills.frames.resolver import ExtractFrame, resolve_frames
from ytstills.ingest.metadata import extract_links, fetch_metadata
from ytstills.ingest.transcript import fetch_transcript, full_text
from ytstills.ingest.video_id import extract_video_id, watch_url
from ytstills.models import ExtractedLink, StillFrame, VideoMetadata, VideoReport
from ytstills.propose.candidate_selector import select_candidates

logger = logging.getLogger(__name__)

MAX_FRAMES_RANGE = (1, 50)
INTERVAL_SECONDS_RANGE = (10, 600)


def run_video(
    video: str,
    settings: Settings,
    *,
    capture_frames: bool | None = None,
    max_frames: int | None = None,
    interval_seconds: int | None = None,
    extract_frame: ExtractFrame | None = None,
) -> VideoReport:
    """Collect metadata and transcript for one video and resolve its still frames."""

    video_id = extract_video_id(video)
    logger.info("Processing video: %s", video_id)

    metadata = _load_metadata(video_id, settings)
    transcript = fetch_transcript(video_id, settings.fetch.language)
    transcript_text = full_text(transcript)
    links = merge_links(metadata.links, extract_links(transcript_text))

    should_capture = settings.frames.capture_frames if capture_frames is None else capture_frames
    frames: list[StillFrame] = []
    if should_capture and metadata.duration_seconds > 0:
        budget = _clamp_int(max_frames if max_frames is not None else settings.frames.max_frames, *MAX_FRAMES_RANGE)
        interval = _clamp_int(
            interval_seconds if interval_seconds is not None else settings.frames.interval_seconds,
            *INTERVAL_SECONDS_RANGE,
        )
        candidates = select_candidates(
            metadata.duration_seconds,
            metadata.chapters,
            transcript,
            budget,
            interval,
        )
        logger.info("Selected %d capture timestamp(s) for %s", len(candidates), video_id)

        if candidates:
            extractor = extract_frame if extract_frame is not None else build_extractor(settings)
            frames = resolve_frames(
                video_id,
                candidates,
                metadata.storyboard_spec,
                extract_frame=extractor,
                workers=settings.frames.workers,
            )

    return VideoReport(
        video_id=video_id,
        video_url=watch_url(video_id),
        metadata=metadata,
        transcript=transcript,
        full_transcript_text=transcript_text,
        links=links,
        frames=frames,
    )


def build_extractor(settings: Settings) -> ExtractFrame | None:
    if not settings.frames.extraction_enabled:
        return None

    return FrameExtractor(
        Path(settings.pipeline.cache_dir) / "frames",
        stream_format=settings.frames.stream_format,
        timeout_seconds=settings.frames.extraction_timeout_seconds,
        max_width=settings.frames.max_width,
    )


def merge_links(*groups: list[ExtractedLink]) -> list[ExtractedLink]:
    merged: list[ExtractedLink] = []
    seen: set[str] = set()
    for group in groups:
        for link in group:
            if link.url in seen:
                continue
            seen.add(link.url)
            merged.append(link)
    return merged


def _load_metadata(video_id: str, settings: Settings) -> VideoMetadata:
    try:
        return fetch_metadata(video_id, settings.fetch)
    except (RuntimeError, ValueError, OSError) as exc:
        logger.warning("Metadata fetch failed for %s, using defaults: %s", video_id, exc)
        return VideoMetadata(thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg")


def _clamp_int(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, int(value)))
