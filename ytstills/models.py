from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Relevance = Literal["visual_cue", "chapter_start", "topic_transition", "interval"]
FrameTierName = Literal["exact", "storyboard", "thumbnail"]

PRIORITY_BY_RELEVANCE: dict[str, int] = {
    "visual_cue": 1,
    "chapter_start": 2,
    "topic_transition": 3,
    "interval": 4,
}


@dataclass(slots=True)
class TranscriptSegment:
    """One caption line with its position on the timeline."""

    text: str
    start_seconds: float
    duration_seconds: float

    @property
    def end_seconds(self) -> float:
        return self.start_seconds + self.duration_seconds


@dataclass(slots=True)
class VideoChapter:
    title: str
    start_seconds: float


@dataclass(slots=True)
class TimestampCandidate:
    """A proposed capture moment; priority always follows from relevance."""

    seconds: float
    label: str
    relevance: Relevance
    transcript_context: str | None = None
    chapter_title: str | None = None

    @property
    def priority(self) -> int:
        return PRIORITY_BY_RELEVANCE[self.relevance]


@dataclass(frozen=True, slots=True)
class TileRect:
    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True, slots=True)
class StoryboardTile:
    """A time-indexed region of a storyboard sheet."""

    url: str
    tile_rect: TileRect
    timestamp_ms: int


@dataclass(slots=True)
class StillFrame:
    """Resolved image for one candidate; the tier is recoverable from tile_rect/is_fallback."""

    timestamp_seconds: float
    timestamp_formatted: str
    label: str
    relevance: Relevance
    image_url: str
    transcript_context: str | None = None
    chapter_title: str | None = None
    tile_rect: TileRect | None = None
    is_fallback: bool | None = None

    @property
    def tier(self) -> FrameTierName:
        if self.is_fallback:
            return "thumbnail"
        if self.tile_rect is not None:
            return "storyboard"
        return "exact"


@dataclass(slots=True)
class ExtractedLink:
    url: str
    context: str


@dataclass(slots=True)
class VideoMetadata:
    title: str = "Unknown"
    channel_name: str = "Unknown"
    channel_url: str = ""
    published_date: str = ""
    duration_seconds: int = 0
    view_count: int = 0
    description: str = ""
    thumbnail_url: str = ""
    chapters: list[VideoChapter] = field(default_factory=list)
    links: list[ExtractedLink] = field(default_factory=list)
    storyboard_spec: str | None = None


@dataclass(slots=True)
class VideoReport:
    """Everything produced for one video in a single pass."""

    video_id: str
    video_url: str
    metadata: VideoMetadata
    transcript: list[TranscriptSegment]
    full_transcript_text: str
    links: list[ExtractedLink]
    frames: list[StillFrame]
