from __future__ import annotations

import io
from pathlib import Path

import pytest
from pypdf import PageObject, PdfReader, PdfWriter
from pypdf.generic import (
    ArrayObject,
    DecodedStreamObject,
    DictionaryObject,
    NameObject,
    NumberObject,
    RectangleObject,
)

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
from bookify.imposition.core import plan_booklet, plan_double_sided
from bookify.imposition.pdf_writer import (
    PageSize,
    apply_order,
    create_blank_page,
    deterministic_output_filename,
    load_document,
    page_handles,
    reference_page_size,
    save_document,
)

pytestmark = pytest.mark.unit


def _reload(writer: PdfWriter) -> PdfReader:
    payload = io.BytesIO()
    writer.write(payload)
    payload.seek(0)
    return PdfReader(payload)


def test_page_handles_are_one_based(numbered_writer) -> None:
    writer = numbered_writer(3)

    handles = page_handles(writer)

    assert sorted(handles) == [1, 2, 3]
    assert handles[1] == writer.pages[0].indirect_reference
    assert handles[3] == writer.pages[2].indirect_reference


def test_reference_page_size_uses_first_page_crop_box(numbered_writer) -> None:
    writer = numbered_writer(2)
    writer.pages[0].cropbox = RectangleObject((10, 20, 110, 220))

    assert reference_page_size(writer) == PageSize(width=100, height=200)


def test_reference_page_size_falls_back_to_media_box(numbered_writer) -> None:
    assert reference_page_size(numbered_writer(2)) == PageSize(width=300, height=500)


def test_reference_page_size_rejects_empty_document() -> None:
    with pytest.raises(InvalidPdfFormatError, match="document has no pages"):
        reference_page_size(PdfWriter())


def test_create_blank_page_registers_page_outside_the_tree(numbered_writer) -> None:
    writer = numbered_writer(2)

    reference = create_blank_page(writer, PageSize(width=200, height=400))

    page = reference.get_object()
    assert page["/Type"] == "/Page"
    assert float(page.mediabox.width) == 200
    assert float(page.mediabox.height) == 400
    assert page._get_contents_as_bytes() == b""
    assert len(writer.pages) == 2


def test_create_blank_page_copies_rotation_and_group_from_template(numbered_writer) -> None:
    writer = numbered_writer(1)
    template = writer.pages[0]
    template[NameObject("/Rotate")] = NumberObject(90)
    template[NameObject("/Group")] = DictionaryObject(
        {
            NameObject("/S"): NameObject("/Transparency"),
            NameObject("/CS"): NameObject("/DeviceRGB"),
        }
    )

    reference = create_blank_page(writer, PageSize(width=300, height=500), template=template)

    page = reference.get_object()
    assert page["/Rotate"] == 90
    assert page["/Group"]["/S"] == "/Transparency"
    assert page["/Group"]["/CS"] == "/DeviceRGB"


def test_create_blank_page_without_template_has_no_rotation_or_group(numbered_writer) -> None:
    reference = create_blank_page(numbered_writer(1), PageSize(width=300, height=500))

    page = reference.get_object()
    assert "/Rotate" not in page
    assert "/Group" not in page


@pytest.mark.parametrize("size", [PageSize(width=0, height=100), PageSize(width=100, height=-1)])
def test_create_blank_page_rejects_non_positive_sizes(numbered_writer, size: PageSize) -> None:
    with pytest.raises(PageCreationError, match="blank page size must be positive") as excinfo:
        create_blank_page(numbered_writer(1), size)
    assert excinfo.value.step == "create_blank_page"


def test_apply_order_reorders_pages(numbered_writer, page_numbers) -> None:
    writer = numbered_writer(4)

    count = apply_order(writer, (4, 1, 2, 3))

    assert count == 4
    assert page_numbers(writer) == [4, 1, 2, 3]
    assert page_numbers(_reload(writer)) == [4, 1, 2, 3]


def test_apply_order_inserts_one_blank_per_zero(numbered_writer, page_numbers) -> None:
    writer = numbered_writer(5)
    order = plan_booklet(5, "four-up")

    count = apply_order(writer, order)

    reader = _reload(writer)
    assert count == 8
    assert len(reader.pages) == 8
    assert page_numbers(reader) == list(order)
    blanks = [page for page in reader.pages if "/Contents" in page]
    assert len(blanks) == order.count(0)
    assert len({page.indirect_reference.idnum for page in blanks}) == len(blanks)
    for page in blanks:
        assert float(page.mediabox.width) == 300
        assert float(page.mediabox.height) == 500


def test_apply_order_double_sided_drops_other_half(numbered_writer, page_numbers) -> None:
    writer = numbered_writer(5)

    count = apply_order(writer, plan_double_sided(5, "rr", "even"))

    assert count == 3
    assert page_numbers(_reload(writer)) == [0, 4, 2]


def test_apply_order_updates_page_tree_count_and_parents(numbered_writer) -> None:
    writer = numbered_writer(3)

    apply_order(writer, (0, 3, 1, 2))

    pages_reference = writer.root_object.raw_get("/Pages")
    pages_node = pages_reference.get_object()
    assert pages_node["/Count"] == 4
    assert len(pages_node["/Kids"]) == 4
    for kid in pages_node["/Kids"]:
        assert kid.get_object().raw_get("/Parent") == pages_reference


def test_apply_order_rejects_page_past_the_end(numbered_writer) -> None:
    writer = numbered_writer(4)

    with pytest.raises(PageNotFoundError, match="page 5 not found in a document of 4 pages") as excinfo:
        apply_order(writer, (1, 2, 3, 4, 5))

    assert excinfo.value.page_number == 5
    assert excinfo.value.step == "resolve_pages"


def test_apply_order_leaves_tree_untouched_when_resolution_fails(numbered_writer, page_numbers) -> None:
    writer = numbered_writer(3)

    with pytest.raises(PageNotFoundError):
        apply_order(writer, (0, 3, 9))

    assert page_numbers(writer) == [1, 2, 3]


@pytest.mark.parametrize(
    ("media_box", "expected_error"),
    [
        (None, "no usable /MediaBox"),
        (ArrayObject([NumberObject(0), NumberObject(0)]), "no usable /MediaBox"),
        (RectangleObject((0, 0, 0, 500)), "degenerate visible area"),
    ],
    ids=["missing", "two-values", "zero-width"],
)
def test_apply_order_rejects_unusable_reference_page_box(
    numbered_writer,
    media_box: ArrayObject | None,
    expected_error: str,
) -> None:
    writer = numbered_writer(3)
    first_page = writer.pages[0]
    if media_box is None:
        del first_page[NameObject("/MediaBox")]
    else:
        first_page[NameObject("/MediaBox")] = media_box

    with pytest.raises(InvalidPdfFormatError, match=expected_error):
        apply_order(writer, (0, 1, 2, 3))

    assert len(writer.pages) == 3


def test_apply_order_releases_dropped_page_content(numbered_writer, page_numbers) -> None:
    writer = numbered_writer(4)
    contents = DecodedStreamObject()
    contents.set_data(b"0 0 m 10 10 l S")
    writer.pages[1][NameObject("/Contents")] = writer._add_object(contents)

    apply_order(writer, (3, 1))

    payload = io.BytesIO()
    writer.write(payload)
    assert b"10 10 l" not in payload.getvalue()
    payload.seek(0)
    assert page_numbers(PdfReader(payload)) == [3, 1]


def test_apply_order_keeps_dropped_page_still_used_by_outline(numbered_writer) -> None:
    writer = numbered_writer(3)
    second_page = writer.pages[1].indirect_reference
    writer.add_outline_item("Second", 1)

    apply_order(writer, (1, 3))

    assert isinstance(second_page.get_object(), PageObject)
    assert len(_reload(writer).pages) == 2


def test_apply_order_rejects_duplicate_pages(numbered_writer) -> None:
    with pytest.raises(PageOrderError, match="page 2 appears more than once"):
        apply_order(numbered_writer(3), (2, 1, 2))


def test_apply_order_blank_in_empty_document_fails() -> None:
    with pytest.raises(PageCreationError, match="no pages to take a blank page size from"):
        apply_order(PdfWriter(), (0,))


def test_apply_order_empty_order_on_empty_document() -> None:
    writer = PdfWriter()

    assert apply_order(writer, ()) == 0
    assert len(writer.pages) == 0


def test_apply_order_requires_page_tree_reference(numbered_writer) -> None:
    writer = numbered_writer(2)
    del writer.root_object[NameObject("/Pages")]

    with pytest.raises(PageTreeError, match="no /Pages reference") as excinfo:
        apply_order(writer, (1, 2))
    assert excinfo.value.step == "update_container"


def test_load_document_missing_file(tmp_path: Path) -> None:
    with pytest.raises(PdfFileNotFoundError, match="PDF file not found"):
        load_document(tmp_path / "missing.pdf")


def test_load_document_rejects_garbage(tmp_path: Path) -> None:
    source = tmp_path / "broken.pdf"
    source.write_bytes(b"this is not a pdf")

    with pytest.raises(InvalidPdfFormatError, match="broken.pdf could not be parsed"):
        load_document(source)


def test_load_document_rejects_encrypted(tmp_path: Path, numbered_pdf_bytes) -> None:
    source = tmp_path / "locked.pdf"
    source.write_bytes(numbered_pdf_bytes(2, encrypted=True))

    with pytest.raises(InvalidPdfFormatError, match="locked.pdf is encrypted"):
        load_document(source)


def test_load_document_from_stream(numbered_pdf_bytes, page_numbers) -> None:
    writer = load_document(io.BytesIO(numbered_pdf_bytes(3)), source_name="upload.pdf")

    assert page_numbers(writer) == [1, 2, 3]


def test_load_document_stream_errors_name_the_source(numbered_pdf_bytes) -> None:
    with pytest.raises(EncryptedPdfError, match="upload.pdf is encrypted"):
        load_document(io.BytesIO(numbered_pdf_bytes(2, encrypted=True)), source_name="upload.pdf")
    with pytest.raises(InvalidPdfFormatError, match="document could not be parsed"):
        load_document(io.BytesIO(b"not a pdf"))


def test_save_document_reports_unwritable_target(numbered_writer, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")
    target = blocker / "out.pdf"

    with pytest.raises(PdfIOError, match="IO error") as excinfo:
        save_document(numbered_writer(1), target)

    assert excinfo.value.path == target
    assert isinstance(excinfo.value.source, OSError)
    assert blocker.is_file()


def test_load_then_save_round_trip(numbered_pdf, page_numbers, tmp_path: Path) -> None:
    writer = load_document(numbered_pdf(6))
    apply_order(writer, plan_booklet(6, "two-up"))

    output = save_document(writer, tmp_path / "nested" / "out.pdf")

    assert output.is_file()
    assert page_numbers(PdfReader(output)) == [0, 1, 2, 0, 6, 3, 4, 5]


@pytest.mark.parametrize(
    ("source_name", "expected"),
    [
        ("Quarterly Report (Final).pdf", "quarterly_report_final_booklet.pdf"),
        ("!!!.pdf", "output_booklet.pdf"),
        ("", "output_booklet.pdf"),
        ("docs/My Input v2.PDF", "my_input_v2_booklet.pdf"),
    ],
)
def test_deterministic_output_filename_handles_slug_edge_cases(source_name: str, expected: str) -> None:
    assert deterministic_output_filename(source_name, "booklet") == expected
