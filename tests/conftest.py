from __future__ import annotations

import importlib
import io
import sys
from pathlib import Path
from typing import Callable

import pytest
from pypdf import PdfReader, PdfWriter

# Resolve the package from this checkout rather than a stale editable install.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

BASE_WIDTH = 300
BASE_HEIGHT = 500


def _ensure_package_from_root(module_name: str, root: Path) -> None:
    module = sys.modules.get(module_name)
    module_file = getattr(module, "__file__", None)
    if module_file is not None and root in Path(module_file).resolve().parents:
        return

    for loaded_name in list(sys.modules):
        if loaded_name == module_name or loaded_name.startswith(f"{module_name}."):
            sys.modules.pop(loaded_name, None)

    module = importlib.import_module(module_name)
    module_path = Path(module.__file__ or "").resolve()
    if root not in module_path.parents:
        raise RuntimeError(
            f"Expected '{module_name}' under '{root}', got '{module_path}'. "
            "Run `python -m pip install -e '.[dev]'` from this checkout and re-run pytest."
        )


def pytest_sessionstart(session) -> None:  # type: ignore[no-untyped-def]
    _ensure_package_from_root("bookify", ROOT)


def _numbered_writer(page_count: int) -> PdfWriter:
    writer = PdfWriter()
    for index in range(page_count):
        writer.add_blank_page(width=BASE_WIDTH + index, height=BASE_HEIGHT)
    return writer


def _numbered_pdf_bytes(page_count: int, *, encrypted: bool = False) -> bytes:
    writer = _numbered_writer(page_count)
    if encrypted:
        writer.encrypt("secret")
    payload = io.BytesIO()
    writer.write(payload)
    return payload.getvalue()


def _page_numbers(document: PdfReader | PdfWriter) -> list[int]:
    # Source pages carry no /Contents; synthesized blanks carry an empty stream.
    numbers = []
    for page in document.pages:
        if "/Contents" in page:
            numbers.append(0)
        else:
            numbers.append(int(round(float(page.mediabox.width))) - BASE_WIDTH + 1)
    return numbers


@pytest.fixture
def numbered_writer() -> Callable[[int], PdfWriter]:
    """Factory for in-memory documents whose page N is (BASE_WIDTH + N - 1) points wide."""
    return _numbered_writer


@pytest.fixture
def numbered_pdf_bytes() -> Callable[..., bytes]:
    return _numbered_pdf_bytes


@pytest.fixture
def page_numbers() -> Callable[[PdfReader | PdfWriter], list[int]]:
    return _page_numbers


@pytest.fixture
def numbered_pdf(tmp_path: Path) -> Callable[[int], Path]:
    def build(page_count: int) -> Path:
        path = tmp_path / f"numbered{page_count}.pdf"
        path.write_bytes(_numbered_pdf_bytes(page_count))
        return path

    return build
