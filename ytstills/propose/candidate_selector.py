from __future__ import annotations

import math
import re
from collections.abc import Sequence

from ytstills.models import TimestampCandidate, TranscriptSegment, VideoChapter
from ytstills.timecode import format_timestamp

DEDUP_RADIUS_SECONDS = 10.0
CHAPTER_OFFSET_SECONDS = 5.0
TOPIC_GAP_SECONDS = 3.0
MIN_INTERVAL_SECONDS = 10.0
END_MARGIN_SECONDS = 5.0
LABEL_MAX_CHARS = 80
CONTEXT_WINDOW_SECONDS = 15.0
CONTEXT_MAX_CHARS = 200

VISUAL_CUE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bas you can see\b",
        r"\byou can see (?:here|this|that)\b",
        r"\blet me show you\b",
        r"\bi(?:'ll| will) show you\b",
        r"\bthis (?:diagram|chart|graph|slide|image|picture|screenshot)\b",
        r"\bon (?:the|my|your) screen\b",
        r"\btake a look\b",
        r"\bif you look (?:at|here)\b",
        r"\blook at (?:this|that|the)\b",
        r"\bshown here\b",
        r"\bright here\b",
    )
)


def select_candidates(
    duration_seconds: float,
    chapters: Sequence[VideoChapter],
    transcript: Sequence[TranscriptSegment],
    max_frames: int,
    interval_seconds: float,
) -> list[TimestampCandidate]:
    """Pick up to ``max_frames`` capture timestamps in chronological order.

    Pipeline:
    1) generate candidates from four independent heuristics
       (visual cues, chapter starts, topic transitions, fixed interval)
    2) keep the highest-priority candidate inside every dedup radius
    3) sample evenly down to the frame budget
    """

    if duration_seconds <= 0 or max_frames <= 0:
        return []

    generated = [
        *visual_cue_candidates(transcript),
        *chapter_start_candidates(chapters, duration_seconds),
        *topic_transition_candidates(transcript),
        *interval_candidates(duration_seconds, interval_seconds),
    ]
    enriched = [_enrich(candidate, chapters, transcript) for candidate in generated]
    deduplicated = deduplicate_candidates(enriched)
    return sample_evenly(deduplicated, max_frames)


def visual_cue_candidates(transcript: Sequence[TranscriptSegment]) -> list[TimestampCandidate]:
    candidates: list[TimestampCandidate] = []
    for segment in transcript:
        text = segment.text.strip()
        if not any(pattern.search(text) for pattern in VISUAL_CUE_PATTERNS):
            continue
        candidates.append(
            TimestampCandidate(
                seconds=max(0.0, float(segment.start_seconds)),
                label=text[:LABEL_MAX_CHARS],
                relevance="visual_cue",
                transcript_context=text,
            )
        )
    return candidates


def chapter_start_candidates(
    chapters: Sequence[VideoChapter],
    duration_seconds: float,
) -> list[TimestampCandidate]:
    # offset past title cards and transitions
    latest = duration_seconds - 1
    return [
        TimestampCandidate(
            seconds=max(0.0, min(chapter.start_seconds + CHAPTER_OFFSET_SECONDS, latest)),
            label=chapter.title,
            relevance="chapter_start",
            chapter_title=chapter.title,
        )
        for chapter in chapters
    ]


def topic_transition_candidates(transcript: Sequence[TranscriptSegment]) -> list[TimestampCandidate]:
    candidates: list[TimestampCandidate] = []
    for previous, current in zip(transcript, transcript[1:]):
        gap = current.start_seconds - previous.end_seconds
        if gap <= TOPIC_GAP_SECONDS:
            continue
        candidates.append(
            TimestampCandidate(
                seconds=float(current.start_seconds),
                label=f"Topic transition at {format_timestamp(current.start_seconds)}",
                relevance="topic_transition",
            )
        )
    return candidates


def interval_candidates(duration_seconds: float, interval_seconds: float) -> list[TimestampCandidate]:
    interval = max(float(interval_seconds), MIN_INTERVAL_SECONDS)
    candidates: list[TimestampCandidate] = []
    current = interval
    while current < duration_seconds - END_MARGIN_SECONDS:
        candidates.append(
            TimestampCandidate(
                seconds=current,
                label=f"Frame at {format_timestamp(current)}",
                relevance="interval",
            )
        )
        current += interval
    return candidates


def deduplicate_candidates(
    candidates: Sequence[TimestampCandidate],
    radius_seconds: float = DEDUP_RADIUS_SECONDS,
) -> list[TimestampCandidate]:
    """Keep the best candidate per radius, then return them in timeline order."""

    ranked = sorted(candidates, key=lambda candidate: (candidate.priority, candidate.seconds))
    kept: list[TimestampCandidate] = []
    for candidate in ranked:
        if any(abs(candidate.seconds - other.seconds) < radius_seconds for other in kept):
            continue
        kept.append(candidate)

    return sorted(kept, key=lambda candidate: candidate.seconds)


def sample_evenly(candidates: Sequence[TimestampCandidate], max_frames: int) -> list[TimestampCandidate]:
    """Reduce to ``max_frames`` by even index sampling, preserving temporal spread."""

    if max_frames <= 0:
        return []
    if len(candidates) <= max_frames:
        return list(candidates)

    step = len(candidates) / max_frames
    return [candidates[math.floor(index * step)] for index in range(max_frames)]


def _enrich(
    candidate: TimestampCandidate,
    chapters: Sequence[VideoChapter],
    transcript: Sequence[TranscriptSegment],
) -> TimestampCandidate:
    chapter_title = candidate.chapter_title or _enclosing_chapter_title(chapters, candidate.seconds)
    context = candidate.transcript_context or _nearby_text(transcript, candidate.seconds)
    return TimestampCandidate(
        seconds=candidate.seconds,
        label=candidate.label,
        relevance=candidate.relevance,
        transcript_context=context,
        chapter_title=chapter_title,
    )


def _enclosing_chapter_title(chapters: Sequence[VideoChapter], seconds: float) -> str | None:
    title: str | None = None
    for chapter in chapters:
        if chapter.start_seconds > seconds:
            break
        title = chapter.title
    return title


def _nearby_text(transcript: Sequence[TranscriptSegment], seconds: float) -> str | None:
    lines = [
        segment.text.strip()
        for segment in transcript
        if abs(segment.start_seconds - seconds) <= CONTEXT_WINDOW_SECONDS and segment.text.strip()
    ]
    if not lines:
        return None
    return " ".join(lines)[:CONTEXT_MAX_CHARS]
