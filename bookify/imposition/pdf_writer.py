from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Sequence

from pypdf import PageObject, PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from pypdf.generic import (
    ArrayObject,
    DecodedStreamObject,
    DictionaryObject,
    IndirectObject,
    NameObject,
    NumberObject,
    PdfObject,
)

from bookify.constants import BLANK_PAGE
from bookify.errors import (
    EncryptedPdfError,
    InvalidPdfFormatError,
    PageCreationError,
    PageNotFoundError,
    PageOrderError,
    PageTreeError,
    PdfFileNotFoundError,
    PdfIOError,
)
from bookify.log import log_event

_LOGGER = logging.getLogger("bookify.imposition")

# Copied from the reference page onto synthesized blanks.
_BLANK_TEMPLATE_KEYS: tuple[str, ...] = ("/Rotate", "/Group")


@dataclass(frozen=True)
class PageSize:
    width: float
    height: float


def load_document(source: Path | str | BinaryIO, *, source_name: str | None = None) -> PdfWriter:
    if isinstance(source, (str, Path)):
        source = Path(source)
        if not source.is_file():
            raise PdfFileNotFoundError(source)
        source_name = source_name or source.name
    label = source_name or "document"

    try:
        reader = PdfReader(source)
        if reader.is_encrypted:
            raise EncryptedPdfError(label)
        return PdfWriter(clone_from=reader)
    except PyPdfError as exc:
        raise InvalidPdfFormatError(f"{label} could not be parsed: {exc}") from exc


def save_document(writer: PdfWriter, output_path: Path | str) -> Path:
    target = Path(output_path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as handle:
            writer.write(handle)
    except OSError as exc:
        raise PdfIOError(target, exc) from exc
    return target


def deterministic_output_filename(source_name: str, suffix: str) -> str:
    stem = Path(source_name).stem.strip()
    if not stem:
        stem = "output"

    slug = re.sub(r"[^A-Za-z0-9]+", "_", stem).strip("_").lower()
    slug = slug or "output"
    return f"{slug}_{suffix}.pdf"


def page_handles(writer: PdfWriter) -> dict[int, IndirectObject]:
    handles: dict[int, IndirectObject] = {}
    try:
        pages = list(writer.pages)
    except PyPdfError as exc:
        raise InvalidPdfFormatError(f"page tree could not be read: {exc}") from exc

    for page_number, page in enumerate(pages, start=1):
        reference = page.indirect_reference
        if not isinstance(reference, IndirectObject):
            raise InvalidPdfFormatError(f"page {page_number} is not an indirect object")
        handles[page_number] = reference
    return handles


def _visible_size(page: PageObject) -> PageSize:
    try:
        box = page.cropbox
    except (ValueError, TypeError) as exc:
        raise InvalidPdfFormatError(f"page has no usable /MediaBox: {exc}") from exc

    width = abs(float(box.width))
    height = abs(float(box.height))
    if width <= 0 or height <= 0:
        raise InvalidPdfFormatError(f"page has a degenerate visible area {width} x {height}")
    return PageSize(width=width, height=height)


def reference_page_size(writer: PdfWriter) -> PageSize:
    if len(writer.pages) == 0:
        raise InvalidPdfFormatError("document has no pages")
    return _visible_size(writer.pages[0])


def create_blank_page(
    writer: PdfWriter,
    size: PageSize,
    template: PageObject | None = None,
) -> IndirectObject:
    # Registered in the object store only; apply_order links it into the tree.
    if size.width <= 0 or size.height <= 0:
        raise PageCreationError(f"blank page size must be positive, got {size.width} x {size.height}")

    try:
        page = PageObject.create_blank_page(writer, width=size.width, height=size.height)
        if template is not None:
            for key in _BLANK_TEMPLATE_KEYS:
                if key in template:
                    page[NameObject(key)] = template.raw_get(key)

        contents = DecodedStreamObject()
        contents.set_data(b"")
        page[NameObject("/Contents")] = writer._add_object(contents)
        return writer._add_object(page)
    except PyPdfError as exc:
        raise PageCreationError(str(exc)) from exc


def _page_tree_root(writer: PdfWriter) -> tuple[IndirectObject, DictionaryObject]:
    try:
        reference = writer.root_object.get("/Pages")
    except PyPdfError as exc:
        raise PageTreeError(f"document catalog could not be read: {exc}") from exc

    if not isinstance(reference, IndirectObject):
        raise PageTreeError("document catalog has no /Pages reference")

    node = reference.get_object()
    if not isinstance(node, DictionaryObject):
        raise PageTreeError(f"/Pages resolves to {type(node).__name__}, expected a dictionary")
    return reference, node


def _resolve_order(
    writer: PdfWriter,
    order: Sequence[int],
    handles: dict[int, IndirectObject],
) -> tuple[list[IndirectObject], int]:
    kids: list[IndirectObject] = []
    used: set[int] = set()
    blank_size: PageSize | None = None
    template: PageObject | None = None
    blanks = 0

    for page_number in order:
        if page_number == BLANK_PAGE:
            if blank_size is None:
                if not handles:
                    raise PageCreationError("document has no pages to take a blank page size from")
                template = writer.pages[0]
                blank_size = reference_page_size(writer)
            kids.append(create_blank_page(writer, blank_size, template=template))
            blanks += 1
            continue

        reference = handles.get(page_number)
        if reference is None:
            raise PageNotFoundError(page_number, len(handles))
        if page_number in used:
            raise PageOrderError(f"page {page_number} appears more than once in the page order")
        used.add(page_number)
        kids.append(reference)

    return kids, blanks


def _reachable_objects(writer: PdfWriter, start: Sequence[PdfObject]) -> set[int]:
    seen: set[int] = set()
    pending = list(start)
    while pending:
        obj = pending.pop()
        if isinstance(obj, IndirectObject):
            if obj.pdf is not writer or obj.idnum in seen or not 0 < obj.idnum <= len(writer._objects):
                continue
            seen.add(obj.idnum)
            obj = writer._objects[obj.idnum - 1]

        if isinstance(obj, DictionaryObject):
            pending.extend(obj.values())
        elif isinstance(obj, ArrayObject):
            pending.extend(obj)
    return seen


def _prune_dropped_pages(writer: PdfWriter, dropped: Sequence[IndirectObject]) -> int:
    # Pages still reached from the catalog (outlines, link targets) stay.
    if not dropped:
        return 0

    root_reference = writer.root_object.indirect_reference
    if root_reference is None:
        return 0
    kept = _reachable_objects(writer, [root_reference])
    released = _reachable_objects(writer, dropped) - kept
    for idnum in released:
        writer._objects[idnum - 1] = None
    return len(released)


def apply_order(writer: PdfWriter, order: Sequence[int]) -> int:
    # On error the document may hold orphaned blank pages and must not be saved.
    pages_reference, pages_node = _page_tree_root(writer)
    handles = page_handles(writer)
    kids, blanks = _resolve_order(writer, order, handles)

    new_pages: list[PageObject] = []
    for reference in kids:
        try:
            page = reference.get_object()
        except PyPdfError as exc:
            raise PageTreeError(f"{reference!r} could not be resolved: {exc}") from exc
        if not isinstance(page, PageObject):
            raise PageTreeError(f"{reference!r} does not resolve to a page")
        new_pages.append(page)

    # The new tree is flat: every page hangs directly off the root node.
    for page in new_pages:
        page[NameObject("/Parent")] = pages_reference
    pages_node[NameObject("/Kids")] = ArrayObject(kids)
    pages_node[NameObject("/Count")] = NumberObject(len(kids))
    writer.flattened_pages = new_pages

    used = {reference.idnum for reference in kids}
    dropped = [reference for reference in handles.values() if reference.idnum not in used]
    released = _prune_dropped_pages(writer, dropped)

    log_event(
        _LOGGER,
        logging.DEBUG,
        "imposition.page_tree.rewritten",
        source_pages=len(handles),
        output_pages=len(kids),
        blank_pages=blanks,
        dropped_pages=len(dropped),
        released_objects=released,
    )
    return len(kids)
