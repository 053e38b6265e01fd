from __future__ import annotations

import pytest

from ytstills.models import PRIORITY_BY_RELEVANCE, TimestampCandidate, TranscriptSegment, VideoChapter
from ytstills.propose.candidate_selector import (
    chapter_start_candidates,
    deduplicate_candidates,
    interval_candidates,
    sample_evenly,
    select_candidates,
    topic_transition_candidates,
    visual_cue_candidates,
)


def _chapters() -> list[VideoChapter]:
    return [VideoChapter(title="Intro", start_seconds=0), VideoChapter(title="Body", start_seconds=300)]


def test_select_candidates_chapters_and_interval_scenario() -> None:
    candidates = select_candidates(630, _chapters(), [], max_frames=10, interval_seconds=60)

    seconds = [candidate.seconds for candidate in candidates]
    assert len(candidates) <= 10
    assert seconds == sorted(set(seconds))
    assert 5 in seconds
    assert 305 in seconds
    # the interval candidate at 300 sits inside the radius of the Body chapter start
    assert 300 not in seconds

    by_second = {candidate.seconds: candidate for candidate in candidates}
    assert by_second[5].label == "Intro"
    assert by_second[5].relevance == "chapter_start"
    assert by_second[305].label == "Body"
    assert by_second[360].chapter_title == "Body"
    assert by_second[60].chapter_title == "Intro"


def test_select_candidates_keeps_minimum_spacing_and_priority_mapping() -> None:
    transcript = [
        TranscriptSegment(text="welcome back everyone", start_seconds=0, duration_seconds=4),
        TranscriptSegment(text="As you can see on this chart, revenue doubled", start_seconds=42, duration_seconds=5),
        TranscriptSegment(text="moving on", start_seconds=55, duration_seconds=2),
        TranscriptSegment(text="let me show you the config file", start_seconds=125, duration_seconds=3),
    ]

    candidates = select_candidates(400, _chapters(), transcript, max_frames=50, interval_seconds=30)

    for candidate in candidates:
        assert candidate.priority == PRIORITY_BY_RELEVANCE[candidate.relevance]
    for earlier, later in zip(candidates, candidates[1:]):
        assert later.seconds - earlier.seconds >= 10

    by_second = {candidate.seconds: candidate for candidate in candidates}
    assert by_second[42].relevance == "visual_cue"
    assert by_second[125].relevance == "visual_cue"
    assert 120 not in by_second


def test_select_candidates_without_chapters_or_transcript_uses_interval() -> None:
    candidates = select_candidates(125, [], [], max_frames=10, interval_seconds=30)

    assert [candidate.seconds for candidate in candidates] == [30, 60, 90]
    assert all(candidate.relevance == "interval" for candidate in candidates)
    assert candidates[0].label == "Frame at 0:30"


@pytest.mark.parametrize(
    ("duration", "max_frames"),
    [
        (8, 10),
        (0, 10),
        (-5, 10),
        (600, 0),
    ],
)
def test_select_candidates_returns_empty_when_nothing_requested(duration: float, max_frames: int) -> None:
    chapters = _chapters() if duration <= 0 or max_frames <= 0 else []
    assert select_candidates(duration, chapters, [], max_frames=max_frames, interval_seconds=60) == []


def test_topic_transition_emits_single_candidate_for_long_gap() -> None:
    transcript = [
        TranscriptSegment(text="hello", start_seconds=0, duration_seconds=2),
        TranscriptSegment(text="world", start_seconds=7, duration_seconds=2),
    ]

    transitions = topic_transition_candidates(transcript)

    assert len(transitions) == 1
    assert transitions[0].seconds == 7
    assert transitions[0].priority == 3
    assert transitions[0].label == "Topic transition at 0:07"

    selected = select_candidates(20, [], transcript, max_frames=5, interval_seconds=60)
    assert [(candidate.seconds, candidate.relevance) for candidate in selected] == [(7, "topic_transition")]
    assert selected[0].transcript_context == "hello world"


def test_topic_transition_ignores_short_gaps() -> None:
    transcript = [
        TranscriptSegment(text="a", start_seconds=0, duration_seconds=2),
        TranscriptSegment(text="b", start_seconds=5, duration_seconds=2),
    ]

    assert topic_transition_candidates(transcript) == []


def test_visual_cue_uses_first_80_characters_and_one_candidate_per_segment() -> None:
    text = "Let me show you this diagram on the screen " + "x" * 100
    transcript = [TranscriptSegment(text=text, start_seconds=12.5, duration_seconds=4)]

    cues = visual_cue_candidates(transcript)

    assert len(cues) == 1
    assert cues[0].label == text[:80]
    assert cues[0].priority == 1
    assert cues[0].transcript_context == text


def test_visual_cue_is_case_insensitive_and_skips_plain_speech() -> None:
    transcript = [
        TranscriptSegment(text="AS YOU CAN SEE", start_seconds=1, duration_seconds=1),
        TranscriptSegment(text="we talked about the weather", start_seconds=3, duration_seconds=1),
    ]

    assert [cue.seconds for cue in visual_cue_candidates(transcript)] == [1]


def test_chapter_start_is_offset_and_clamped_to_duration() -> None:
    chapters = [VideoChapter(title="Start", start_seconds=0), VideoChapter(title="Outro", start_seconds=18)]

    starts = chapter_start_candidates(chapters, duration_seconds=20)

    assert [candidate.seconds for candidate in starts] == [5, 19]
    assert starts[1].chapter_title == "Outro"


def test_interval_uses_minimum_cadence_and_stops_before_end() -> None:
    seconds = [candidate.seconds for candidate in interval_candidates(46, interval_seconds=3)]

    assert seconds == [10, 20, 30, 40]


def test_deduplicate_prefers_higher_priority_even_when_later() -> None:
    candidates = [
        TimestampCandidate(seconds=100, label="interval", relevance="interval"),
        TimestampCandidate(seconds=105, label="chapter", relevance="chapter_start"),
        TimestampCandidate(seconds=108, label="cue", relevance="visual_cue"),
        TimestampCandidate(seconds=130, label="gap", relevance="topic_transition"),
    ]

    kept = deduplicate_candidates(candidates)

    assert [candidate.label for candidate in kept] == ["cue", "gap"]


def test_deduplicate_returns_chronological_order() -> None:
    candidates = [
        TimestampCandidate(seconds=200, label="late cue", relevance="visual_cue"),
        TimestampCandidate(seconds=50, label="early interval", relevance="interval"),
        TimestampCandidate(seconds=112, label="chapter", relevance="chapter_start"),
    ]

    kept = deduplicate_candidates(candidates)

    assert [candidate.seconds for candidate in kept] == [50, 112, 200]


def test_sample_evenly_spreads_across_timeline() -> None:
    candidates = [
        TimestampCandidate(seconds=float(index * 10), label=str(index), relevance="interval") for index in range(10)
    ]

    sampled = sample_evenly(candidates, 4)

    assert [candidate.label for candidate in sampled] == ["0", "2", "5", "7"]
    assert sample_evenly(candidates, 20) == candidates
