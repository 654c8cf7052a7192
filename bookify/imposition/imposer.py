from __future__ import annotations

import logging
from pathlib import Path

from pypdf import PdfWriter

from bookify.constants import BLANK_PAGE
from bookify.errors import BookifyError, PdfProcessingError
from bookify.imposition.core import (
    FlipType,
    LayoutType,
    OddEven,
    PageOrder,
    plan_booklet,
    plan_double_sided,
)
from bookify.imposition.pdf_writer import apply_order, load_document, save_document
from bookify.log import log_event

_LOGGER = logging.getLogger("bookify.imposition")


class PdfImposer:
    # Single use: after a failed export the document may be half rewritten.
    def __init__(self, source: Path | str, writer: PdfWriter | None = None) -> None:
        self.source = Path(source)
        self.document = writer if writer is not None else load_document(self.source)
        self.page_count = len(self.document.pages)
        self.page_order: PageOrder | None = None
        self._failed = False

    def _check_usable(self, operation: str) -> None:
        if self._failed:
            raise PdfProcessingError(operation, "a previous export failed; reload the document")
        if self.page_order is not None and operation != "save":
            raise PdfProcessingError(operation, "the document has already been reordered")

    def _apply(self, event_name: str, order: PageOrder) -> PageOrder:
        try:
            output_pages = apply_order(self.document, order)
        except BookifyError as exc:
            self._failed = True
            log_event(
                _LOGGER,
                logging.WARNING,
                f"{event_name}.failed",
                source=str(self.source),
                source_pages=self.page_count,
                error=str(exc),
            )
            raise

        self.page_order = order
        log_event(
            _LOGGER,
            logging.INFO,
            f"{event_name}.completed",
            source=str(self.source),
            source_pages=self.page_count,
            output_pages=output_pages,
            blank_pages=order.count(BLANK_PAGE),
        )
        return order

    def export_booklet(self, layout: LayoutType, minimum_pages: int | None = None) -> PageOrder:
        self._check_usable("export booklet")
        order = plan_booklet(self.page_count, layout, minimum_pages=minimum_pages)
        return self._apply("imposition.booklet", order)

    def export_double_sided(self, flip: FlipType, parity: OddEven) -> PageOrder:
        self._check_usable("export double-sided")
        order = plan_double_sided(self.page_count, flip, parity)
        return self._apply("imposition.double_sided", order)

    def save(self, output: Path | str) -> Path:
        self._check_usable("save")
        path = save_document(self.document, output)
        log_event(_LOGGER, logging.DEBUG, "imposition.saved", source=str(self.source), output=str(path))
        return path
