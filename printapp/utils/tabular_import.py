"""Turn uploaded CSV/TSV/XLSX files into header-keyed rows."""

from __future__ import annotations

import csv
import io
import os
import re
from typing import Iterable, Mapping

from werkzeug.datastructures import FileStorage


class TabularImportError(ValueError):
    """Raised when tabular uploads cannot be parsed."""


def _rows_to_csv_text(rows: Iterable[Iterable[object]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return output.getvalue()


def parse_tabular_upload(file_storage: FileStorage) -> str:
    """Return CSV text for a CSV, TSV, or XLSX upload."""

    if not file_storage or not file_storage.filename:
        raise TabularImportError("No file uploaded.")

    _, ext = os.path.splitext(file_storage.filename)
    ext = ext.lower()

    if ext == ".csv":
        try:
            return file_storage.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TabularImportError("CSV import files must be UTF-8 encoded.") from exc

    if ext == ".tsv":
        try:
            text = file_storage.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TabularImportError("TSV import files must be UTF-8 encoded.") from exc
        reader = csv.reader(io.StringIO(text), delimiter="\t")
        return _rows_to_csv_text(reader)

    if ext == ".xlsx":
        from openpyxl import load_workbook

        data = file_storage.stream.read()
        workbook = load_workbook(filename=io.BytesIO(data), read_only=True, data_only=True)
        sheet = workbook.active
        return _rows_to_csv_text(sheet.iter_rows(values_only=True))

    raise TabularImportError("Unsupported file type. Upload a CSV, TSV, or XLSX file.")


def normalize_header(value) -> str:
    """Lower-case a header and collapse punctuation so aliases compare cleanly.

    Word characters of any script survive, so ``品名/規格`` becomes ``品名 規格``.
    """

    cleaned = re.sub(r"[^\w]+", " ", str(value or "").strip().lower())
    return re.sub(r"\s+", " ", cleaned).strip()


def resolve_columns(headers: Iterable[str], aliases: Mapping[str, set[str]]) -> dict[str, str]:
    """Map each target field to the header that carries it in this upload."""

    normalized = {normalize_header(header): header for header in headers if header}
    resolved: dict[str, str] = {}
    for target, names in aliases.items():
        for name in names:
            header = normalized.get(normalize_header(name))
            if header is not None:
                resolved[target] = header
                break
    return resolved


def read_csv_rows(csv_text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Return the header row and every data row as a dict.

    Rows that are completely blank are skipped.
    """

    reader = csv.DictReader(io.StringIO(csv_text or ""))
    headers = [header for header in (reader.fieldnames or []) if header]
    rows = []
    for row in reader:
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        rows.append({key: (value or "") for key, value in row.items() if key})
    return headers, rows
