from __future__ import annotations

from typing import Final

SLOTS_PER_SHEET: Final[dict[str, int]] = {
    "two-up": 4,
    "four-up": 8,
}

BLANK_PAGE: Final[int] = 0

DEFAULT_LAYOUT: Final[str] = "four-up"
DEFAULT_FLIP_TYPE: Final[str] = "rr"
DEFAULT_ODD_EVEN: Final[str] = "odd"

DEFAULT_ARTIFACT_DIR: Final[str] = "generated"
DEFAULT_ARTIFACT_RETENTION_SECONDS: Final[int] = 24 * 60 * 60
