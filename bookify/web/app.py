from __future__ import annotations

import io
import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from bookify import __version__
from bookify.constants import (
    BLANK_PAGE,
    DEFAULT_ARTIFACT_DIR,
    DEFAULT_ARTIFACT_RETENTION_SECONDS,
    DEFAULT_FLIP_TYPE,
    DEFAULT_LAYOUT,
    DEFAULT_ODD_EVEN,
)
from bookify.errors import BookifyError, EncryptedPdfError, InvalidPdfFormatError
from bookify.imposition.core import (
    FlipType,
    LayoutType,
    OddEven,
    resolve_flip_type,
    resolve_layout_type,
    resolve_odd_even,
)
from bookify.imposition.imposer import PdfImposer
from bookify.imposition.pdf_writer import deterministic_output_filename, load_document
from bookify.log import log_event

_REQUEST_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")
_EXPIRED_ARTIFACT_MESSAGE = "This download link has expired after cleanup. Resubmit the PDF to create a new link."
_LOGGER = logging.getLogger("bookify.web")
ExportMode = Literal["booklet", "double-sided"]


@dataclass(frozen=True)
class ExportOptions:
    mode: ExportMode
    layout: LayoutType = "four-up"
    minimum_pages: int | None = None
    flip_type: FlipType = "rr"
    odd_even: OddEven = "odd"

    @property
    def output_suffix(self) -> str:
        if self.mode == "booklet":
            return f"booklet_{self.layout.replace('-', '_')}"
        return f"double_sided_{self.odd_even}"


def _cleanup_stale_artifacts(
    artifact_dir: Path,
    *,
    retention_seconds: int,
    now: float | None = None,
) -> int:
    if retention_seconds < 0:
        return 0

    cutoff = (time.time() if now is None else now) - retention_seconds
    removed = 0
    for child in artifact_dir.iterdir():
        try:
            is_stale = child.stat().st_mtime < cutoff
        except FileNotFoundError:
            continue

        if not is_stale:
            continue

        if child.is_dir():
            shutil.rmtree(child, ignore_errors=True)
        else:
            child.unlink(missing_ok=True)
        removed += 1

    return removed


def _validated_filename(filename: str) -> str:
    if "\\" in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    safe_name = Path(filename).name
    if safe_name != filename or safe_name in {"", ".", ".."}:
        raise HTTPException(status_code=400, detail="Invalid filename")
    return safe_name


def _parse_booklet_form(*, layout: str, pages: str) -> tuple[ExportOptions | None, str | None]:
    try:
        resolved_layout = resolve_layout_type(layout)
    except ValueError:
        return None, "Invalid layout. Choose two-up or four-up."

    pages_value = pages.strip()
    minimum_pages: int | None = None
    if pages_value:
        try:
            minimum_pages = int(pages_value)
        except ValueError:
            return None, "Target page count must be a whole number."
        if minimum_pages < 0:
            return None, "Target page count must be 0 or greater."

    return ExportOptions(mode="booklet", layout=resolved_layout, minimum_pages=minimum_pages), None


def _parse_double_sided_form(*, flip_type: str, odd_even: str) -> tuple[ExportOptions | None, str | None]:
    try:
        resolved_flip = resolve_flip_type(flip_type)
    except ValueError:
        return None, "Invalid flip type. Choose one of: rr, nn, rn, nr."
    try:
        resolved_parity = resolve_odd_even(odd_even)
    except ValueError:
        return None, "Invalid page selection. Choose odd or even."

    return ExportOptions(mode="double-sided", flip_type=resolved_flip, odd_even=resolved_parity), None


def _validate_upload_metadata(file: UploadFile | None) -> tuple[str | None, str | None]:
    if file is None or not file.filename:
        return None, "Upload a PDF file to continue."

    source_name = Path(file.filename).name
    if Path(source_name).suffix.lower() != ".pdf":
        return None, "Only .pdf uploads are supported."

    return source_name, None


def _impose_payload(
    *,
    payload: bytes,
    source_name: str,
    options: ExportOptions,
    artifact_dir: Path,
    artifact_retention_seconds: int,
    job_id: str | None = None,
) -> tuple[dict[str, Any] | None, str | None]:
    if not payload:
        log_event(_LOGGER, logging.WARNING, "impose.job.empty_upload", job_id=job_id, source_name=source_name)
        return None, "The uploaded file is empty."

    try:
        writer = load_document(io.BytesIO(payload), source_name=source_name)
    except EncryptedPdfError:
        log_event(_LOGGER, logging.WARNING, "impose.job.encrypted_pdf", job_id=job_id, source_name=source_name)
        return None, "Encrypted PDFs are not supported. Remove encryption and retry."
    except InvalidPdfFormatError:
        log_event(
            _LOGGER,
            logging.WARNING,
            "impose.job.invalid_pdf",
            job_id=job_id,
            source_name=source_name,
            payload_bytes=len(payload),
        )
        return None, "The upload could not be parsed as a PDF. Verify the file is a valid, non-corrupted PDF and retry."

    removed = _cleanup_stale_artifacts(
        artifact_dir,
        retention_seconds=artifact_retention_seconds,
    )

    request_id = uuid4().hex
    output_name = deterministic_output_filename(source_name, options.output_suffix)
    output_path = artifact_dir / request_id / output_name

    try:
        imposer = PdfImposer(source_name, writer=writer)
        if options.mode == "booklet":
            order = imposer.export_booklet(options.layout, minimum_pages=options.minimum_pages)
        else:
            order = imposer.export_double_sided(options.flip_type, options.odd_even)
        imposer.save(output_path)
    except BookifyError as exc:
        log_event(
            _LOGGER,
            logging.WARNING,
            "impose.job.failed",
            job_id=job_id,
            source_name=source_name,
            error=str(exc),
        )
        return None, f"Imposition failed: {exc}."
    except Exception:
        _LOGGER.exception(
            "impose.job.unexpected_failure",
            extra={
                "event_name": "impose.job.unexpected_failure",
                "event_fields": {"job_id": job_id, "source_name": source_name},
            },
        )
        return None, "Imposition failed unexpectedly. Retry and check server logs for the associated job."

    log_event(
        _LOGGER,
        logging.INFO,
        "impose.job.completed",
        job_id=job_id,
        request_id=request_id,
        source_name=source_name,
        mode=options.mode,
        source_pages=imposer.page_count,
        output_pages=len(order),
        stale_artifacts_removed=removed,
    )

    return {
        "status": "success",
        "mode": options.mode,
        "message": "Imposition complete.",
        "download_url": f"/download/{request_id}/{output_name}",
        "output_filename": output_name,
        "source_pages": imposer.page_count,
        "output_pages": len(order),
        "blank_pages": order.count(BLANK_PAGE),
        "page_order": list(order),
    }, None


def _resolve_request_artifact_path(artifact_dir: Path, request_id: str, filename: str) -> Path:
    if _REQUEST_ID_PATTERN.fullmatch(request_id) is None:
        log_event(_LOGGER, logging.WARNING, "download.request.invalid_request_id", request_id=request_id, filename=filename)
        raise HTTPException(status_code=400, detail="Invalid request id")

    safe_name = _validated_filename(filename)
    request_artifact_dir = artifact_dir / request_id
    if not request_artifact_dir.is_dir():
        log_event(_LOGGER, logging.WARNING, "download.request.expired", request_id=request_id, filename=safe_name)
        raise HTTPException(status_code=410, detail=_EXPIRED_ARTIFACT_MESSAGE)

    file_path = request_artifact_dir / safe_name
    if not file_path.is_file():
        log_event(_LOGGER, logging.WARNING, "download.request.missing_file", request_id=request_id, filename=safe_name)
        raise HTTPException(status_code=404, detail="File not found")

    return file_path


def _error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


def create_app(
    artifact_dir: Path | None = None,
    artifact_retention_seconds: int = DEFAULT_ARTIFACT_RETENTION_SECONDS,
) -> FastAPI:
    app = FastAPI(title="Bookify", version=__version__)

    target_artifact_dir = artifact_dir or (Path.cwd() / DEFAULT_ARTIFACT_DIR)
    target_artifact_dir.mkdir(parents=True, exist_ok=True)
    app.state.artifact_dir = target_artifact_dir
    app.state.artifact_retention_seconds = artifact_retention_seconds

    async def run_export(
        *,
        file: UploadFile | None,
        options: ExportOptions | None,
        form_error: str | None,
    ) -> JSONResponse:
        job_id = uuid4().hex
        log_event(
            _LOGGER,
            logging.INFO,
            "impose.request.received",
            job_id=job_id,
            mode=None if options is None else options.mode,
            has_upload=file is not None and bool(file.filename),
        )
        if form_error is not None or options is None:
            log_event(_LOGGER, logging.WARNING, "impose.request.form_validation_failed", job_id=job_id, error=form_error)
            return _error_response(form_error or "Invalid export options.")

        source_name, upload_error = _validate_upload_metadata(file)
        if upload_error is not None or file is None or source_name is None:
            log_event(_LOGGER, logging.WARNING, "impose.request.upload_validation_failed", job_id=job_id, error=upload_error)
            return _error_response(upload_error or "Upload a PDF file to continue.")

        payload = await file.read()
        result, impose_error = _impose_payload(
            payload=payload,
            source_name=source_name,
            options=options,
            artifact_dir=app.state.artifact_dir,
            artifact_retention_seconds=app.state.artifact_retention_seconds,
            job_id=job_id,
        )
        if impose_error is not None or result is None:
            log_event(_LOGGER, logging.WARNING, "impose.request.failed", job_id=job_id, source_name=source_name, error=impose_error)
            return _error_response(impose_error or "Imposition failed.")

        log_event(
            _LOGGER,
            logging.INFO,
            "impose.request.succeeded",
            job_id=job_id,
            source_name=source_name,
            output_filename=result["output_filename"],
            output_pages=result["output_pages"],
            download_url=result["download_url"],
        )
        return JSONResponse(result)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/booklet")
    async def booklet(
        file: UploadFile | None = File(default=None),
        layout: str = Form(DEFAULT_LAYOUT),
        pages: str = Form(""),
    ) -> JSONResponse:
        options, form_error = _parse_booklet_form(layout=layout, pages=pages)
        return await run_export(file=file, options=options, form_error=form_error)

    @app.post("/double-sided")
    async def double_sided(
        file: UploadFile | None = File(default=None),
        flip_type: str = Form(DEFAULT_FLIP_TYPE),
        odd_even: str = Form(DEFAULT_ODD_EVEN),
    ) -> JSONResponse:
        options, form_error = _parse_double_sided_form(flip_type=flip_type, odd_even=odd_even)
        return await run_export(file=file, options=options, form_error=form_error)

    @app.get("/download/{request_id}/{filename:path}")
    def download_request_artifact(request_id: str, filename: str) -> FileResponse:
        file_path = _resolve_request_artifact_path(app.state.artifact_dir, request_id, filename)
        return FileResponse(path=file_path, media_type="application/pdf", filename=file_path.name)

    return app


app = create_app()
