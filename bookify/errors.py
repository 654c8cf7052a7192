from __future__ import annotations

from pathlib import Path
from typing import Literal

RewriteStep = Literal["resolve_pages", "update_container", "create_blank_page"]


class BookifyError(Exception):
    pass


class PdfFileNotFoundError(BookifyError):
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"PDF file not found: {self.path}")


class InvalidPdfFormatError(BookifyError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid PDF format: {message}")


class EncryptedPdfError(InvalidPdfFormatError):
    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        super().__init__(f"{source_name} is encrypted; remove encryption and retry")


class PdfIOError(BookifyError):
    def __init__(self, path: Path | str, source: OSError) -> None:
        self.path = Path(path)
        self.source = source
        super().__init__(f"IO error (file: {self.path}): {source}")


class PageNotFoundError(BookifyError):
    step: RewriteStep = "resolve_pages"

    def __init__(self, page_number: int, page_count: int) -> None:
        self.page_number = page_number
        self.page_count = page_count
        super().__init__(f"page {page_number} not found in a document of {page_count} pages")


class PageOrderError(BookifyError):
    step: RewriteStep = "resolve_pages"


class PdfProcessingError(BookifyError):
    def __init__(self, operation: str, details: str) -> None:
        self.operation = operation
        self.details = details
        super().__init__(f"PDF processing failed: {operation} - {details}")


class PageTreeError(PdfProcessingError):
    step: RewriteStep = "update_container"

    def __init__(self, details: str) -> None:
        super().__init__("update page tree", details)


class PageCreationError(PdfProcessingError):
    step: RewriteStep = "create_blank_page"

    def __init__(self, details: str) -> None:
        super().__init__("create blank page", details)
