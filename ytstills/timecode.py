from __future__ import annotations


def format_timestamp(total_seconds: float) -> str:
    """Format seconds as ``H:MM:SS`` or ``M:SS``."""

    seconds = max(0, int(total_seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_timestamp(value: str) -> int:
    """Parse ``M:SS`` / ``H:MM:SS`` into whole seconds."""

    parts = [int(part) for part in value.strip().split(":")]
    if not 2 <= len(parts) <= 3:
        raise ValueError(f"Unsupported timestamp format: {value!r}")

    total = 0
    for part in parts:
        total = total * 60 + part
    return total
