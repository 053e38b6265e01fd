from __future__ import annotations

import logging
from collections.abc import Sequence

from ytstills.models import StoryboardTile, TileRect

logger = logging.getLogger(__name__)

LEVEL_SEPARATOR = "|"
FIELD_SEPARATOR = "#"
LEVEL_PLACEHOLDER = "$L"
NAME_PLACEHOLDER = "$N"
SHEET_PLACEHOLDER = "$M"
SIGNATURE_PARAM = "sigh"
MIN_LEVEL_FIELDS = 8
MAX_TILE_COUNT = 100_000
MAX_SHEETS = 1_000


def decode_storyboard(spec: str | None) -> list[StoryboardTile]:
    """Decode the highest-quality level of a storyboard spec into tiles.

    The spec is ``<root url>|<level 0>|...|<level N>`` where each level is
    ``width#height#count#columns#rows#interval_ms#sheet_name#signature``.
    Malformed input yields an empty list; this function never raises.
    """

    if not spec:
        return []

    records = spec.strip().split(LEVEL_SEPARATOR)
    if len(records) < 2:
        return []

    fields = records[-1].split(FIELD_SEPARATOR)
    if len(fields) < MIN_LEVEL_FIELDS:
        logger.debug("Storyboard level has %d fields; expected at least %d.", len(fields), MIN_LEVEL_FIELDS)
        return []

    try:
        tile_width, tile_height, tile_count, columns, rows, interval_ms = (int(value) for value in fields[:6])
    except ValueError:
        logger.debug("Storyboard level has non-numeric geometry: %s", fields[:6])
        return []

    if min(tile_width, tile_height, tile_count, columns, rows, interval_ms) <= 0:
        return []

    if tile_count > MAX_TILE_COUNT or tile_count > columns * rows * MAX_SHEETS:
        logger.debug("Storyboard level declares an implausible tile count: %d", tile_count)
        return []

    template = _level_template(
        root=records[0],
        level_index=len(records) - 2,
        sheet_name=fields[6].strip(),
    )
    signature = fields[7].strip()
    tiles_per_sheet = columns * rows

    tiles: list[StoryboardTile] = []
    sheet_urls: dict[int, str] = {}
    for index in range(tile_count):
        sheet_index, position = divmod(index, tiles_per_sheet)
        row, col = divmod(position, columns)

        url = sheet_urls.get(sheet_index)
        if url is None:
            url = _sheet_url(template, sheet_index, signature)
            sheet_urls[sheet_index] = url

        tiles.append(
            StoryboardTile(
                url=url,
                tile_rect=TileRect(x=col * tile_width, y=row * tile_height, w=tile_width, h=tile_height),
                timestamp_ms=index * interval_ms,
            )
        )

    return tiles


def nearest_tile(tiles: Sequence[StoryboardTile], seconds: float) -> StoryboardTile | None:
    """Return the tile closest in time to ``seconds``; ties keep the earliest."""

    target_ms = seconds * 1000
    best: StoryboardTile | None = None
    best_distance = float("inf")
    for tile in tiles:
        distance = abs(tile.timestamp_ms - target_ms)
        if distance < best_distance:
            best = tile
            best_distance = distance
    return best


def _level_template(*, root: str, level_index: int, sheet_name: str) -> str:
    template = root.strip().replace(LEVEL_PLACEHOLDER, str(level_index))
    if sheet_name:
        return template.replace(NAME_PLACEHOLDER, sheet_name)
    return template


def _sheet_url(template: str, sheet_index: int, signature: str) -> str:
    if SHEET_PLACEHOLDER in template:
        url = template.replace(SHEET_PLACEHOLDER, str(sheet_index))
    else:
        url = template.replace(NAME_PLACEHOLDER, f"M{sheet_index}")

    if signature and f"{SIGNATURE_PARAM}=" not in url:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{SIGNATURE_PARAM}={signature}"
    return url
