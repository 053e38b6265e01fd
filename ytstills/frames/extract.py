from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import Any

import yt_dlp
from yt_dlp.utils import DownloadError
from PIL import Image

from ytstills.ingest.video_id import watch_url

logger = logging.getLogger(__name__)

DEFAULT_STREAM_FORMAT = "best[height<=720]"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_WIDTH = 1280


class FrameExtractionError(RuntimeError):
    """Single failure signal for every way an exact frame grab can go wrong."""


class FrameExtractor:
    """Grab one exact frame per call with yt-dlp + ffmpeg and store it on disk.

    Instances are callable as ``extractor(video_id, seconds) -> locator`` where
    the locator is a ``file://`` URI of the stored JPEG.
    """

    def __init__(
        self,
        store_dir: str | Path,
        *,
        stream_format: str = DEFAULT_STREAM_FORMAT,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        max_width: int = DEFAULT_MAX_WIDTH,
    ) -> None:
        self.store_dir = Path(store_dir).expanduser().resolve()
        self.stream_format = stream_format
        self.timeout_seconds = timeout_seconds
        self.max_width = max_width
        self._stream_urls: dict[str, str] = {}
        self._stream_errors: dict[str, FrameExtractionError] = {}
        self._stream_lock = threading.Lock()

    def __call__(self, video_id: str, timestamp_seconds: float) -> str:
        stream_url = self._stream_url(video_id)

        self.store_dir.mkdir(parents=True, exist_ok=True)
        key = frame_key(video_id, timestamp_seconds)
        final_path = self.store_dir / f"{key}.jpg"
        partial_path = self.store_dir / f"{key}.part.jpg"

        try:
            _grab_frame(stream_url, timestamp_seconds, partial_path, timeout_seconds=self.timeout_seconds)
            _normalize_image(partial_path, max_width=self.max_width)
            partial_path.replace(final_path)
        finally:
            partial_path.unlink(missing_ok=True)

        logger.debug("Stored exact frame for %s at %.1fs: %s", video_id, timestamp_seconds, final_path)
        return final_path.as_uri()

    def _stream_url(self, video_id: str) -> str:
        # a video that failed to resolve stays failed for this extractor
        with self._stream_lock:
            cached = self._stream_urls.get(video_id)
            if cached is not None:
                return cached
            failure = self._stream_errors.get(video_id)
            if failure is not None:
                raise failure

            try:
                stream_url = resolve_stream_url(
                    video_id,
                    stream_format=self.stream_format,
                    timeout_seconds=self.timeout_seconds,
                )
            except FrameExtractionError as exc:
                self._stream_errors[video_id] = exc
                raise

            self._stream_urls[video_id] = stream_url
            return stream_url


def frame_key(video_id: str, timestamp_seconds: float) -> str:
    return f"frame-{video_id}-{int(round(max(0.0, timestamp_seconds) * 1000))}"


def resolve_stream_url(
    video_id: str,
    *,
    stream_format: str = DEFAULT_STREAM_FORMAT,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """Resolve a direct media URL for the video without downloading it."""

    ydl_opts = {
        "format": stream_format,
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
        "socket_timeout": timeout_seconds,
    }
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(watch_url(video_id), download=False)
    except DownloadError as exc:
        raise FrameExtractionError(f"yt-dlp could not resolve a stream for {video_id}: {exc}") from exc

    stream_url = _pick_stream_url(info or {})
    if not stream_url:
        raise FrameExtractionError(f"yt-dlp returned no stream URL for {video_id}.")
    return stream_url


def _pick_stream_url(info: dict[str, Any]) -> str | None:
    if info.get("url"):
        return str(info["url"])
    for requested in info.get("requested_formats") or []:
        if requested.get("vcodec") not in (None, "none") and requested.get("url"):
            return str(requested["url"])
    return None


def _grab_frame(stream_url: str, timestamp_seconds: float, output_path: Path, *, timeout_seconds: int) -> None:
    command = [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-ss",
        f"{max(0.0, timestamp_seconds):.3f}",
        "-i",
        stream_url,
        "-frames:v",
        "1",
        "-q:v",
        "2",
        str(output_path),
    ]

    try:
        subprocess.run(command, check=True, capture_output=True, text=True, timeout=timeout_seconds)
    except FileNotFoundError as exc:
        raise FrameExtractionError(
            "ffmpeg executable was not found. Install FFmpeg so ffmpeg is available on PATH."
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise FrameExtractionError(f"ffmpeg timed out after {timeout_seconds}s.") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        details = f" ffmpeg stderr: {stderr}" if stderr else ""
        raise FrameExtractionError(f"ffmpeg failed to extract a frame.{details}") from exc

    if not output_path.exists() or output_path.stat().st_size == 0:
        raise FrameExtractionError("ffmpeg finished without writing a frame.")


def _normalize_image(path: Path, *, max_width: int) -> None:
    try:
        with Image.open(path) as image:
            image.load()
            if max_width <= 0 or image.width <= max_width:
                return
            ratio = max_width / image.width
            resized = image.convert("RGB").resize((max_width, max(1, int(image.height * ratio))), Image.LANCZOS)
        resized.save(path, format="JPEG", quality=90)
    except OSError as exc:
        raise FrameExtractionError(f"Extracted frame is not a readable image: {path.name}") from exc
