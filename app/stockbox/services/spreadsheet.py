from __future__ import annotations

import csv
import io
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.stockbox.core.config import settings
from app.stockbox.core.error_catalog import AppError, ErrorCatalog


Grid = list[list[object]]

CSV_EXTENSIONS = (".csv", ".txt")


def _trim_row(row) -> list[object]:
    values = list(row)
    while values and (values[-1] is None or values[-1] == ""):
        values.pop()
    return values


def _read_csv(content: bytes) -> Grid:
    text = content.decode("utf-8-sig", errors="replace")
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    return [_trim_row(row) for row in csv.reader(io.StringIO(text), dialect)]


def _read_xlsx(content: bytes) -> Grid:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise AppError(
            ErrorCatalog.MALFORMED_DOCUMENT,
            details={"message": "file is not a readable xlsx workbook", "error": exc.__class__.__name__},
        ) from exc
    try:
        sheet = workbook.worksheets[0]
        return [_trim_row(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def read_grid(filename: str | None, content: bytes) -> Grid:
    """Read the first sheet of an uploaded spreadsheet into a grid of raw cell values."""
    if not content:
        raise AppError(ErrorCatalog.MALFORMED_DOCUMENT, details={"message": "file is empty"})
    name = (filename or "").lower()
    if name.endswith(CSV_EXTENSIONS):
        grid = _read_csv(content)
    else:
        grid = _read_xlsx(content)
    if not any(grid):
        raise AppError(ErrorCatalog.MALFORMED_DOCUMENT, details={"message": "file has no rows"})
    return grid


async def read_upload(file) -> bytes:
    content = await file.read()
    if len(content) > settings.UPLOAD_MAX_BYTES:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "file too large", "max_bytes": settings.UPLOAD_MAX_BYTES},
        )
    return content
