from bookify.imposition.core import (
    REVERSE_TABLE,
    FlipType,
    LayoutType,
    OddEven,
    PageOrder,
    plan_booklet,
    plan_double_sided,
    resolve_flip_type,
    resolve_layout_type,
    resolve_odd_even,
    sheet_count,
    should_reverse,
    slots_per_sheet,
)
from bookify.imposition.imposer import PdfImposer
from bookify.imposition.pdf_writer import (
    PageSize,
    apply_order,
    create_blank_page,
    load_document,
    page_handles,
    reference_page_size,
    save_document,
)

__all__ = [
    "REVERSE_TABLE",
    "FlipType",
    "LayoutType",
    "OddEven",
    "PageOrder",
    "PageSize",
    "PdfImposer",
    "apply_order",
    "create_blank_page",
    "load_document",
    "page_handles",
    "plan_booklet",
    "plan_double_sided",
    "reference_page_size",
    "resolve_flip_type",
    "resolve_layout_type",
    "resolve_odd_even",
    "save_document",
    "sheet_count",
    "should_reverse",
    "slots_per_sheet",
]
