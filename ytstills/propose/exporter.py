from __future__ import annotations

import csv
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from ytstills.models import StillFrame, TileRect, VideoReport


def frame_to_payload(frame: StillFrame) -> dict[str, Any]:
    """Serialize a frame, omitting optional fields that are absent."""

    payload: dict[str, Any] = {
        "timestamp_seconds": frame.timestamp_seconds,
        "timestamp_formatted": frame.timestamp_formatted,
        "label": frame.label,
        "relevance": frame.relevance,
        "image_url": frame.image_url,
    }
    if frame.transcript_context is not None:
        payload["transcript_context"] = frame.transcript_context
    if frame.chapter_title is not None:
        payload["chapter_title"] = frame.chapter_title
    if frame.tile_rect is not None:
        payload["tile_rect"] = asdict(frame.tile_rect)
    if frame.is_fallback is not None:
        payload["is_fallback"] = frame.is_fallback
    return payload


def frame_from_payload(row: dict[str, Any]) -> StillFrame:
    tile_rect = row.get("tile_rect")
    return StillFrame(
        timestamp_seconds=float(row["timestamp_seconds"]),
        timestamp_formatted=str(row["timestamp_formatted"]),
        label=str(row["label"]),
        relevance=row["relevance"],
        image_url=str(row["image_url"]),
        transcript_context=row.get("transcript_context"),
        chapter_title=row.get("chapter_title"),
        tile_rect=TileRect(**tile_rect) if isinstance(tile_rect, dict) else None,
        is_fallback=row.get("is_fallback"),
    )


def report_to_payload(report: VideoReport) -> dict[str, Any]:
    metadata = report.metadata
    return {
        "video_id": report.video_id,
        "video_url": report.video_url,
        "title": metadata.title,
        "channel_name": metadata.channel_name,
        "channel_url": metadata.channel_url,
        "published_date": metadata.published_date,
        "duration_seconds": metadata.duration_seconds,
        "view_count": metadata.view_count,
        "description": metadata.description,
        "thumbnail_url": metadata.thumbnail_url,
        "chapters": [asdict(chapter) for chapter in metadata.chapters],
        "transcript": [asdict(segment) for segment in report.transcript],
        "full_transcript_text": report.full_transcript_text,
        "links": [asdict(link) for link in report.links],
        "frames": [frame_to_payload(frame) for frame in report.frames],
    }


def export_report(
    report: VideoReport,
    output_dir: str | Path,
    *,
    basename: str | None = None,
) -> dict[str, Path]:
    """Write the full JSON report and a per-frame CSV for quick review."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)
    stem = basename or report.video_id

    json_path = resolved_output_dir / f"{stem}.json"
    csv_path = resolved_output_dir / f"{stem}_frames.csv"

    json_path.write_text(
        json.dumps(report_to_payload(report), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    export_frames_csv(report.frames, csv_path)

    return {
        "json": json_path,
        "frames_csv": csv_path,
    }


def export_frames_csv(frames: list[StillFrame], path: Path) -> Path:
    fields = [
        "timestamp_seconds",
        "timestamp_formatted",
        "relevance",
        "tier",
        "label",
        "chapter_title",
        "image_url",
        "tile_rect",
    ]

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for frame in frames:
            rect = frame.tile_rect
            writer.writerow(
                {
                    "timestamp_seconds": f"{frame.timestamp_seconds:.3f}",
                    "timestamp_formatted": frame.timestamp_formatted,
                    "relevance": frame.relevance,
                    "tier": frame.tier,
                    "label": frame.label,
                    "chapter_title": frame.chapter_title or "",
                    "image_url": frame.image_url,
                    "tile_rect": f"{rect.x},{rect.y},{rect.w},{rect.h}" if rect else "",
                }
            )
    return path


def load_frames(path: str | Path) -> list[StillFrame]:
    """Load frames back from an exported JSON report (or a bare frame array)."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    rows = payload.get("frames") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        raise ValueError("Frame payload must be a JSON array or a report with a 'frames' array.")

    frames: list[StillFrame] = []
    for idx, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Frame row {idx} must be an object.")
        frames.append(frame_from_payload(row))
    return frames
