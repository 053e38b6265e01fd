from __future__ import annotations

import subprocess
from pathlib import Path

import pytest
from PIL import Image
from yt_dlp.utils import DownloadError

import ytstills.frames.extract as extract
from ytstills.frames.extract import FrameExtractionError, FrameExtractor, frame_key
from ytstills.frames.resolver import resolve_frames
from ytstills.models import TimestampCandidate


def _fake_ffmpeg(size: tuple[int, int], calls: list[list[str]] | None = None):
    def _run(command, **kwargs):
        if calls is not None:
            calls.append(command)
        Image.new("RGB", size, color=(200, 30, 30)).save(command[-1], format="JPEG")
        return subprocess.CompletedProcess(command, 0, "", "")

    return _run


def test_extractor_writes_resized_frame_and_returns_file_uri(tmp_path: Path, monkeypatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _fake_ffmpeg((2000, 1000), calls))

    extractor = FrameExtractor(tmp_path, max_width=1280)
    locator = extractor("vid", 65.4)

    stored = tmp_path / "frame-vid-65400.jpg"
    assert locator == stored.resolve().as_uri()
    assert not (tmp_path / "frame-vid-65400.part.jpg").exists()
    with Image.open(stored) as image:
        assert image.size == (1280, 640)

    command = calls[0]
    assert command[0] == "ffmpeg"
    assert command[command.index("-ss") + 1] == "65.400"
    assert command[command.index("-i") + 1] == "https://media.test/v.mp4"


def test_extractor_keeps_small_frames_untouched(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _fake_ffmpeg((640, 360)))

    FrameExtractor(tmp_path, max_width=1280)("vid", 10)

    with Image.open(tmp_path / "frame-vid-10000.jpg") as image:
        assert image.size == (640, 360)


def test_extractor_resolves_stream_once_per_video(tmp_path: Path, monkeypatch) -> None:
    resolved: list[str] = []

    def _resolve(video_id: str, **_) -> str:
        resolved.append(video_id)
        return f"https://media.test/{video_id}.mp4"

    monkeypatch.setattr(extract, "resolve_stream_url", _resolve)
    monkeypatch.setattr(extract.subprocess, "run", _fake_ffmpeg((320, 180)))

    extractor = FrameExtractor(tmp_path)
    extractor("vid", 10)
    extractor("vid", 20)
    extractor("other", 10)

    assert resolved == ["vid", "other"]


def test_extractor_reports_missing_ffmpeg(tmp_path: Path, monkeypatch) -> None:
    def _missing(command, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _missing)

    with pytest.raises(FrameExtractionError, match="ffmpeg executable was not found"):
        FrameExtractor(tmp_path)("vid", 10)


def test_extractor_reports_timeout_and_cleans_partial_file(tmp_path: Path, monkeypatch) -> None:
    def _slow(command, **kwargs):
        Path(command[-1]).write_bytes(b"partial")
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])

    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _slow)

    with pytest.raises(FrameExtractionError, match="ffmpeg timed out after 7s"):
        FrameExtractor(tmp_path, timeout_seconds=7)("vid", 10)

    assert list(tmp_path.iterdir()) == []


def test_extractor_reports_ffmpeg_failure_with_stderr(tmp_path: Path, monkeypatch) -> None:
    def _fails(command, **kwargs):
        raise subprocess.CalledProcessError(1, command, output="", stderr="Server returned 403 Forbidden")

    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _fails)

    with pytest.raises(FrameExtractionError, match="403 Forbidden"):
        FrameExtractor(tmp_path)("vid", 10)


def test_extractor_reports_missing_output(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(
        extract.subprocess,
        "run",
        lambda command, **kwargs: subprocess.CompletedProcess(command, 0, "", ""),
    )

    with pytest.raises(FrameExtractionError, match="without writing a frame"):
        FrameExtractor(tmp_path)("vid", 10)


def test_extractor_rejects_unreadable_image(tmp_path: Path, monkeypatch) -> None:
    def _garbage(command, **kwargs):
        Path(command[-1]).write_bytes(b"definitely not a jpeg")
        return subprocess.CompletedProcess(command, 0, "", "")

    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _garbage)

    with pytest.raises(FrameExtractionError, match="not a readable image"):
        FrameExtractor(tmp_path)("vid", 10)

    assert not (tmp_path / "frame-vid-10000.jpg").exists()


class _FakeYoutubeDL:
    info: dict | None = None
    error: Exception | None = None
    seen_opts: list[dict] = []

    def __init__(self, opts: dict) -> None:
        _FakeYoutubeDL.seen_opts.append(opts)

    def __enter__(self) -> "_FakeYoutubeDL":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def extract_info(self, url: str, download: bool = True) -> dict | None:
        assert download is False
        assert url == "https://www.youtube.com/watch?v=vid"
        if _FakeYoutubeDL.error is not None:
            raise _FakeYoutubeDL.error
        return _FakeYoutubeDL.info


def test_resolve_stream_url_uses_format_selector(monkeypatch) -> None:
    monkeypatch.setattr(_FakeYoutubeDL, "info", {"url": "https://media.test/direct.mp4"})
    monkeypatch.setattr(_FakeYoutubeDL, "error", None)
    monkeypatch.setattr(_FakeYoutubeDL, "seen_opts", [])
    monkeypatch.setattr(extract.yt_dlp, "YoutubeDL", _FakeYoutubeDL)

    assert extract.resolve_stream_url("vid", stream_format="worst", timeout_seconds=12) == "https://media.test/direct.mp4"
    assert _FakeYoutubeDL.seen_opts[0]["format"] == "worst"
    assert _FakeYoutubeDL.seen_opts[0]["socket_timeout"] == 12


def test_resolve_stream_url_wraps_download_error(monkeypatch) -> None:
    monkeypatch.setattr(_FakeYoutubeDL, "info", None)
    monkeypatch.setattr(_FakeYoutubeDL, "error", DownloadError("Video unavailable"))
    monkeypatch.setattr(extract.yt_dlp, "YoutubeDL", _FakeYoutubeDL)

    with pytest.raises(FrameExtractionError, match="could not resolve a stream for vid"):
        extract.resolve_stream_url("vid")


def test_resolve_stream_url_rejects_empty_info(monkeypatch) -> None:
    monkeypatch.setattr(_FakeYoutubeDL, "info", {"formats": []})
    monkeypatch.setattr(_FakeYoutubeDL, "error", None)
    monkeypatch.setattr(extract.yt_dlp, "YoutubeDL", _FakeYoutubeDL)

    with pytest.raises(FrameExtractionError, match="no stream URL"):
        extract.resolve_stream_url("vid")


def test_pick_stream_url_prefers_video_track_of_merged_formats() -> None:
    info = {
        "requested_formats": [
            {"vcodec": "none", "url": "https://media.test/audio.m4a"},
            {"vcodec": "avc1.4d401f", "url": "https://media.test/video.mp4"},
        ]
    }

    assert extract._pick_stream_url(info) == "https://media.test/video.mp4"
    assert extract._pick_stream_url({}) is None


def test_frame_key_separates_frames_within_the_same_second() -> None:
    assert frame_key("abc", 59.9) == "frame-abc-59900"
    assert frame_key("abc", 59.2) == "frame-abc-59200"
    assert frame_key("abc", -1) == "frame-abc-0"


def test_extractor_remembers_failed_resolution_per_video(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(_FakeYoutubeDL, "info", None)
    monkeypatch.setattr(_FakeYoutubeDL, "error", DownloadError("Sign in to confirm you're not a bot"))
    monkeypatch.setattr(_FakeYoutubeDL, "seen_opts", [])
    monkeypatch.setattr(extract.yt_dlp, "YoutubeDL", _FakeYoutubeDL)
    monkeypatch.setattr(extract.subprocess, "run", lambda command, **kwargs: pytest.fail("ffmpeg must not run"))

    extractor = FrameExtractor(tmp_path, timeout_seconds=9)
    candidates = [
        TimestampCandidate(seconds=float(seconds), label=str(seconds), relevance="interval")
        for seconds in range(10, 110, 10)
    ]

    frames = resolve_frames("vid", candidates, None, extract_frame=extractor)

    assert len(frames) == 10
    assert all(frame.is_fallback for frame in frames)
    assert len(_FakeYoutubeDL.seen_opts) == 1
    assert _FakeYoutubeDL.seen_opts[0]["socket_timeout"] == 9


def test_extractor_keeps_subsecond_frames_apart(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(extract, "resolve_stream_url", lambda video_id, **_: "https://media.test/v.mp4")
    monkeypatch.setattr(extract.subprocess, "run", _fake_ffmpeg((320, 180)))

    extractor = FrameExtractor(tmp_path)
    first = extractor("vid", 12.1)
    second = extractor("vid", 12.7)

    assert first != second
    assert sorted(path.name for path in tmp_path.iterdir()) == ["frame-vid-12100.jpg", "frame-vid-12700.jpg"]
