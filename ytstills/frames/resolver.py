from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol

from ytstills.frames.storyboard import decode_storyboard, nearest_tile
from ytstills.models import StillFrame, StoryboardTile, TileRect, TimestampCandidate
from ytstills.timecode import format_timestamp

logger = logging.getLogger(__name__)

THUMBNAIL_URL_TEMPLATE = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"

ExtractFrame = Callable[[str, float], str]


@dataclass(slots=True)
class TierHit:
    """Image location produced by a successful tier attempt."""

    image_url: str
    tile_rect: TileRect | None = None
    is_fallback: bool | None = None


class FrameTier(Protocol):
    name: str

    def attempt(self, candidate: TimestampCandidate) -> TierHit | None: ...


class ExactExtractionTier:
    name = "exact"

    def __init__(self, video_id: str, extract_frame: ExtractFrame) -> None:
        self.video_id = video_id
        self.extract_frame = extract_frame

    def attempt(self, candidate: TimestampCandidate) -> TierHit | None:
        try:
            locator = self.extract_frame(self.video_id, candidate.seconds)
        except Exception as exc:
            logger.warning(
                "Exact extraction failed for %s at %s (%s); falling back.",
                self.video_id,
                format_timestamp(candidate.seconds),
                exc,
            )
            return None

        if not locator:
            return None
        return TierHit(image_url=locator)


class StoryboardTier:
    name = "storyboard"

    def __init__(self, tiles: Sequence[StoryboardTile]) -> None:
        self.tiles = tiles

    def attempt(self, candidate: TimestampCandidate) -> TierHit | None:
        tile = nearest_tile(self.tiles, candidate.seconds)
        if tile is None:
            return None
        return TierHit(image_url=tile.url, tile_rect=tile.tile_rect)


class GenericThumbnailTier:
    name = "thumbnail"

    def __init__(self, video_id: str) -> None:
        self.image_url = thumbnail_url(video_id)

    def attempt(self, candidate: TimestampCandidate) -> TierHit | None:
        return TierHit(image_url=self.image_url, is_fallback=True)


def thumbnail_url(video_id: str) -> str:
    return THUMBNAIL_URL_TEMPLATE.format(video_id=video_id)


def build_tiers(
    video_id: str,
    storyboard_spec: str | None = None,
    *,
    extract_frame: ExtractFrame | None = None,
) -> list[FrameTier]:
    """Assemble the fallback chain; the storyboard is decoded here, once."""

    tiers: list[FrameTier] = []
    if extract_frame is not None:
        tiers.append(ExactExtractionTier(video_id, extract_frame))

    tiles = decode_storyboard(storyboard_spec)
    if tiles:
        tiers.append(StoryboardTier(tiles))
    elif storyboard_spec:
        logger.warning("Storyboard spec for %s could not be decoded; skipping storyboard tier.", video_id)

    tiers.append(GenericThumbnailTier(video_id))
    return tiers


def resolve_frames(
    video_id: str,
    candidates: Sequence[TimestampCandidate],
    storyboard_spec: str | None = None,
    *,
    extract_frame: ExtractFrame | None = None,
    workers: int = 1,
) -> list[StillFrame]:
    """Resolve every candidate to exactly one still frame, in input order."""

    if not candidates:
        return []

    tiers = build_tiers(video_id, storyboard_spec, extract_frame=extract_frame)
    logger.info(
        "Resolving %d frame(s) for %s via tiers: %s",
        len(candidates),
        video_id,
        ", ".join(tier.name for tier in tiers),
    )

    def _resolve(candidate: TimestampCandidate) -> StillFrame:
        return resolve_candidate(candidate, tiers)

    if workers <= 1 or len(candidates) == 1:
        return [_resolve(candidate) for candidate in candidates]

    # map() yields results in submission order
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(_resolve, candidates))


def resolve_candidate(candidate: TimestampCandidate, tiers: Sequence[FrameTier]) -> StillFrame:
    for tier in tiers:
        hit = tier.attempt(candidate)
        if hit is None:
            continue
        logger.debug("Frame at %s resolved via %s tier.", format_timestamp(candidate.seconds), tier.name)
        return _to_frame(candidate, hit)

    raise RuntimeError("Frame tier chain is missing its generic thumbnail tier.")


def _to_frame(candidate: TimestampCandidate, hit: TierHit) -> StillFrame:
    return StillFrame(
        timestamp_seconds=candidate.seconds,
        timestamp_formatted=format_timestamp(candidate.seconds),
        label=candidate.label,
        relevance=candidate.relevance,
        image_url=hit.image_url,
        transcript_context=candidate.transcript_context,
        chapter_title=candidate.chapter_title,
        tile_rect=hit.tile_rect,
        is_fallback=hit.is_fallback,
    )
