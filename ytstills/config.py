from __future__ import annotations

import os
from pathlib import Path
from collections.abc import Mapping
from typing import Any

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "YT_STILLS_"


class PipelineSettings(BaseModel):
    output_dir: Path = Path("data/outputs")
    cache_dir: Path = Path("data/cache")


class FrameSettings(BaseModel):
    capture_frames: bool = True
    max_frames: int = 10
    interval_seconds: int = 60
    extraction_enabled: bool = True
    stream_format: str = "best[height<=720]"
    extraction_timeout_seconds: int = 30
    max_width: int = 1280
    workers: int = 1


class FetchSettings(BaseModel):
    language: str = "en"
    timeout_seconds: int = 15
    max_retries: int = 3
    backoff_seconds: float = 1.0


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    frames: FrameSettings = Field(default_factory=FrameSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML, then layer environment overrides on top.

    A missing config file is not an error; built-in defaults apply.
    ``YT_STILLS_FRAMES__MAX_FRAMES=5`` overrides ``frames.max_frames``.
    Values stay strings until pydantic validates the merged document.
    """

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}

    for section, values in env_overrides(os.environ).items():
        merged = dict(raw_config.get(section) or {})
        merged.update(values)
        raw_config[section] = merged

    return Settings.model_validate(raw_config)


def env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Collect ``YT_STILLS_<SECTION>__<KEY>`` variables that name a known setting."""

    overrides: dict[str, dict[str, str]] = {}
    for name, raw_value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue

        section, sep, key = name[len(ENV_PREFIX) :].lower().partition("__")
        if not sep or key not in _section_fields(section):
            continue
        overrides.setdefault(section, {})[key] = raw_value

    return overrides


def _section_fields(section: str) -> set[str]:
    field_info = Settings.model_fields.get(section)
    if field_info is None:
        return set()
    return set(field_info.annotation.model_fields)
