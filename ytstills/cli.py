from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import typer

from ytstills.config import Settings, load_settings
from ytstills.frames.resolver import resolve_frames
from ytstills.frames.storyboard import decode_storyboard
from ytstills.logging_config import configure_logging
from ytstills.models import PRIORITY_BY_RELEVANCE, TimestampCandidate, TranscriptSegment, VideoChapter
from ytstills.pipeline import build_extractor, run_video
from ytstills.propose.candidate_selector import select_candidates
from ytstills.propose.exporter import export_report, frame_to_payload

app = typer.Typer(help="Pick interesting timestamps from a video and resolve them to still frames.")
config_app = typer.Typer(help="Configuration commands.")
storyboard_app = typer.Typer(help="Storyboard spec commands.")

app.add_typer(config_app, name="config")
app.add_typer(storyboard_app, name="storyboard")

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_OPTION = typer.Option(
    Path("configs/default.yaml"),
    "--config",
    "-c",
    envvar="YT_STILLS_CONFIG",
    help="Path to YAML configuration file.",
)


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


@config_app.command("show")
def show_config(config_path: Path = CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@storyboard_app.command("decode")
def decode(
    spec: str = typer.Argument(..., help="Raw storyboard spec string."),
    limit: int = typer.Option(0, help="Print at most this many tiles (0 prints all)."),
) -> None:
    """Decode a storyboard spec and print its tiles as JSON."""

    tiles = decode_storyboard(spec)
    shown = tiles[:limit] if limit > 0 else tiles
    typer.echo(json.dumps({"tile_count": len(tiles), "tiles": [asdict(tile) for tile in shown]}, indent=2))


@app.command("select")
def select(
    timeline_path: Path = typer.Argument(..., help="JSON file with duration_seconds, chapters and transcript."),
    max_frames: int | None = typer.Option(None, help="Frame budget (defaults to config)."),
    interval_seconds: int | None = typer.Option(None, help="Fallback interval in seconds (defaults to config)."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Rank capture timestamps for a timeline without touching the network."""

    settings = _bootstrap(config_path)
    try:
        duration_seconds, chapters, transcript = load_timeline(timeline_path)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.error("Could not read timeline: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    candidates = select_candidates(
        duration_seconds,
        chapters,
        transcript,
        max_frames if max_frames is not None else settings.frames.max_frames,
        interval_seconds if interval_seconds is not None else settings.frames.interval_seconds,
    )
    typer.echo(json.dumps([candidate_to_payload(candidate) for candidate in candidates], indent=2))


@app.command("resolve")
def resolve(
    video_id: str = typer.Argument(..., help="Video id used for extraction and fallback thumbnails."),
    candidates_path: Path = typer.Argument(..., help="JSON array of candidates as printed by `select`."),
    storyboard_spec: str | None = typer.Option(None, "--storyboard", help="Optional raw storyboard spec."),
    extract: bool = typer.Option(True, help="Attempt exact frame extraction with yt-dlp + ffmpeg."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Resolve a candidate file to still frames through the fallback chain."""

    settings = _bootstrap(config_path)
    try:
        candidates = load_candidates(candidates_path)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.error("Could not read candidates: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    frames = resolve_frames(
        video_id,
        candidates,
        storyboard_spec,
        extract_frame=build_extractor(settings) if extract else None,
        workers=settings.frames.workers,
    )
    typer.echo(json.dumps([frame_to_payload(frame) for frame in frames], indent=2))


@app.command("run")
def run_pipeline(
    video: str = typer.Argument(..., help="Video URL or 11-character video id."),
    config_path: Path = CONFIG_OPTION,
    capture_frames: bool | None = typer.Option(None, "--capture-frames/--no-capture-frames", help="Override frame capture."),
    max_frames: int | None = typer.Option(None, help="Frame budget, clamped to 1..50 (defaults to config)."),
    interval_seconds: int | None = typer.Option(None, help="Fallback interval, clamped to 10..600 (defaults to config)."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Directory for JSON/CSV outputs."),
    basename: str | None = typer.Option(None, help="Base filename for exported artifacts (defaults to video id)."),
) -> None:
    """Run metadata, transcript, selection and frame resolution for one video."""

    settings = _bootstrap(config_path)
    total_steps = 2

    try:
        report = _run_with_progress(
            1,
            total_steps,
            "Collect video and resolve frames",
            lambda: run_video(
                video,
                settings,
                capture_frames=capture_frames,
                max_frames=max_frames,
                interval_seconds=interval_seconds,
            ),
        )
        exported = _run_with_progress(
            2,
            total_steps,
            "Export outputs",
            lambda: export_report(
                report,
                output_dir or settings.pipeline.output_dir,
                basename=basename,
            ),
        )
    except (RuntimeError, ValueError) as exc:
        logger.error("Pipeline failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    tiers: dict[str, int] = {}
    for frame in report.frames:
        tiers[frame.tier] = tiers.get(frame.tier, 0) + 1

    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "video_id": report.video_id,
                "title": report.metadata.title,
                "transcript_segments": len(report.transcript),
                "chapters": len(report.metadata.chapters),
                "links": len(report.links),
                "frame_count": len(report.frames),
                "frame_tiers": tiers,
                "outputs": {key: str(path) for key, path in exported.items()},
            },
            indent=2,
        )
    )


def load_timeline(path: Path) -> tuple[float, list[VideoChapter], list[TranscriptSegment]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Timeline must be a JSON object.")

    chapters = [
        VideoChapter(title=str(row["title"]), start_seconds=float(row["start_seconds"]))
        for row in payload.get("chapters", [])
    ]
    transcript = [
        TranscriptSegment(
            text=str(row["text"]),
            start_seconds=float(row["start_seconds"]),
            duration_seconds=float(row.get("duration_seconds", 0.0)),
        )
        for row in payload.get("transcript", [])
    ]
    chapters.sort(key=lambda chapter: chapter.start_seconds)
    transcript.sort(key=lambda segment: segment.start_seconds)
    return float(payload.get("duration_seconds", 0.0)), chapters, transcript


def load_candidates(path: Path) -> list[TimestampCandidate]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Candidate file must be a JSON array.")

    candidates: list[TimestampCandidate] = []
    for idx, row in enumerate(payload, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Candidate row {idx} must be an object.")
        if row.get("relevance") not in PRIORITY_BY_RELEVANCE:
            raise ValueError(f"Candidate row {idx} has unknown relevance: {row.get('relevance')!r}")
        candidates.append(
            TimestampCandidate(
                seconds=float(row["seconds"]),
                label=str(row["label"]),
                relevance=row["relevance"],
                transcript_context=row.get("transcript_context"),
                chapter_title=row.get("chapter_title"),
            )
        )
    return candidates


def candidate_to_payload(candidate: TimestampCandidate) -> dict[str, Any]:
    return {
        "seconds": candidate.seconds,
        "label": candidate.label,
        "relevance": candidate.relevance,
        "priority": candidate.priority,
        "transcript_context": candidate.transcript_context,
        "chapter_title": candidate.chapter_title,
    }


if __name__ == "__main__":
    app()
