"""Delimited-text reading for uploaded ticket tables."""

from __future__ import annotations

import codecs
import csv
import io
from collections.abc import Iterator
from dataclasses import dataclass, field

from ticket_importer.core.exceptions import (
    EmptyTableError,
    InvalidEncodingError,
    InvalidImportConfigurationError,
    MalformedTableError,
    MissingHeaderColumnsError,
)


@dataclass(frozen=True)
class RawRow:
    """One data row; ``position`` is 1-based and excludes the header."""

    position: int
    values: dict[str, str | None] = field(default_factory=dict)

    def get(self, column: str) -> str | None:
        return self.values.get(column)


@dataclass(frozen=True)
class TableSample:
    headers: list[str]
    rows: list[list[str]]


def decode_payload(raw: bytes, encoding: str) -> str:
    try:
        codecs.lookup(encoding)
    except LookupError as exc:
        raise InvalidImportConfigurationError(f"Unknown encoding '{encoding}'", setting="encoding") from exc
    try:
        text = raw.decode(encoding)
    except UnicodeDecodeError as exc:
        raise InvalidEncodingError(encoding) from exc
    return text.removeprefix("\ufeff")


def _reader(text: str, delimiter: str, quote_char: str):
    try:
        return csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, quotechar=quote_char, strict=True)
    except TypeError as exc:
        raise InvalidImportConfigurationError(str(exc), setting="delimiter") from exc


def _header(reader, text: str) -> list[str]:
    try:
        header = next(reader, None)
    except csv.Error as exc:
        raise MalformedTableError(str(exc), line=reader.line_num, context=text.splitlines()[0] if text else None) from exc
    if not header:
        raise EmptyTableError()
    headers = [cell.strip() for cell in header]
    missing = [index for index, name in enumerate(headers, start=1) if not name]
    if missing:
        header_line = text.splitlines()[0] if text else ""
        raise MissingHeaderColumnsError(missing, header_size=len(headers), header_line=header_line)
    return headers


def inspect_table(text: str, *, delimiter: str, quote_char: str, sample_size: int) -> TableSample:
    """Return the header and the first ``sample_size`` rows for preview."""
    if len([line for line in text.splitlines() if line.strip()]) < 2:
        raise EmptyTableError()
    reader = _reader(text, delimiter, quote_char)
    headers = _header(reader, text)
    rows: list[list[str]] = []
    try:
        for record in reader:
            if len(rows) >= sample_size:
                break
            if not any(cell.strip() for cell in record):
                continue
            rows.append(record[: len(headers)])
    except csv.Error as exc:
        raise MalformedTableError(str(exc), line=reader.line_num, context=text.splitlines()[0]) from exc
    return TableSample(headers=headers, rows=rows)


def iter_rows(text: str, *, delimiter: str, quote_char: str) -> Iterator[RawRow]:
    """Yield data rows lazily; a quoting error raises MalformedTableError mid-iteration."""
    reader = _reader(text, delimiter, quote_char)
    headers = _header(reader, text)
    position = 0
    while True:
        try:
            record = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            raise MalformedTableError(str(exc), line=reader.line_num, context=text.splitlines()[0]) from exc
        if not any(cell.strip() for cell in record):
            continue
        position += 1
        padded = list(record[: len(headers)]) + [None] * (len(headers) - len(record))
        yield RawRow(position=position, values=dict(zip(headers, padded)))
