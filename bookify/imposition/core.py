from __future__ import annotations

from typing import Final, Literal, TypeAlias, cast

from bookify.constants import BLANK_PAGE, SLOTS_PER_SHEET

LayoutType = Literal["two-up", "four-up"]
_LAYOUT_TYPES: tuple[LayoutType, ...] = ("two-up", "four-up")
FlipType = Literal["rr", "nn", "rn", "nr"]
_FLIP_TYPES: tuple[FlipType, ...] = ("rr", "nn", "rn", "nr")
OddEven = Literal["odd", "even"]
_ODD_EVEN: tuple[OddEven, ...] = ("odd", "even")

PageOrder: TypeAlias = tuple[int, ...]

# First letter: odd pass, second letter: even pass. r = reversed, n = as is.
REVERSE_TABLE: Final[dict[tuple[FlipType, OddEven], bool]] = {
    ("rr", "odd"): True,
    ("rr", "even"): True,
    ("nn", "odd"): False,
    ("nn", "even"): False,
    ("rn", "odd"): True,
    ("rn", "even"): False,
    ("nr", "odd"): False,
    ("nr", "even"): True,
}


def _normalize(value: str) -> str:
    return value.strip().lower().replace("_", "-")


def resolve_layout_type(value: str) -> LayoutType:
    normalized = _normalize(value)
    if normalized in _LAYOUT_TYPES:
        return cast(LayoutType, normalized)

    valid = ", ".join(_LAYOUT_TYPES)
    raise ValueError(f"unsupported layout '{value}', expected one of: {valid}")


def resolve_flip_type(value: str) -> FlipType:
    normalized = _normalize(value)
    if normalized in _FLIP_TYPES:
        return cast(FlipType, normalized)

    valid = ", ".join(_FLIP_TYPES)
    raise ValueError(f"unsupported flip type '{value}', expected one of: {valid}")


def resolve_odd_even(value: str) -> OddEven:
    normalized = _normalize(value)
    if normalized in _ODD_EVEN:
        return cast(OddEven, normalized)

    valid = ", ".join(_ODD_EVEN)
    raise ValueError(f"unsupported page parity '{value}', expected one of: {valid}")


def slots_per_sheet(layout: LayoutType) -> int:
    try:
        return SLOTS_PER_SHEET[layout]
    except KeyError as exc:
        valid = ", ".join(_LAYOUT_TYPES)
        raise ValueError(f"unsupported layout '{layout}', expected one of: {valid}") from exc


def sheet_count(page_count: int, layout: LayoutType) -> int:
    if page_count < 0:
        raise ValueError("page_count must be >= 0")
    per_sheet = slots_per_sheet(layout)
    return -(-page_count // per_sheet)


def _four_up_sheet(total_pages: int, k: int) -> tuple[int, ...]:
    # front: top-left, top-right, bottom-left, bottom-right; then the back
    return (
        total_pages - 4 * k,
        1 + 4 * k,
        total_pages - 4 * k - 2,
        3 + 4 * k,
        2 + 4 * k,
        total_pages - 4 * k - 1,
        4 + 4 * k,
        total_pages - 4 * k - 3,
    )


def _two_up_sheet(total_pages: int, k: int) -> tuple[int, ...]:
    return (
        total_pages - 2 * k,
        1 + 2 * k,
        2 + 2 * k,
        total_pages - 2 * k - 1,
    )


def plan_booklet(
    page_count: int,
    layout: LayoutType,
    minimum_pages: int | None = None,
) -> PageOrder:
    # Sheets run outside-in; slots past page_count come back as BLANK_PAGE.
    if page_count < 0:
        raise ValueError("page_count must be >= 0")
    if minimum_pages is not None and minimum_pages < 0:
        raise ValueError("minimum_pages must be >= 0")
    if page_count == 0:
        return ()

    target = max(page_count, minimum_pages or 0)
    per_sheet = slots_per_sheet(layout)
    sheets = sheet_count(target, layout)
    total_pages = sheets * per_sheet
    sheet_slots = _four_up_sheet if layout == "four-up" else _two_up_sheet

    order: list[int] = []
    for k in range(sheets):
        order.extend(sheet_slots(total_pages, k))

    return tuple(BLANK_PAGE if page > page_count else page for page in order)


def should_reverse(flip: FlipType, parity: OddEven) -> bool:
    try:
        return REVERSE_TABLE[(flip, parity)]
    except KeyError as exc:
        raise ValueError(f"unsupported flip type/parity pair: {flip!r}, {parity!r}") from exc


def plan_double_sided(total_pages: int, flip: FlipType, parity: OddEven) -> PageOrder:
    if total_pages < 0:
        raise ValueError("total_pages must be >= 0")

    reverse = should_reverse(flip, parity)
    start = 1 if parity == "odd" else 2
    pages = list(range(start, total_pages + 1, 2))
    # both passes must feed the same number of sheets
    if parity == "even" and total_pages % 2 == 1:
        pages.append(BLANK_PAGE)

    if reverse:
        pages.reverse()
    return tuple(pages)
