"""Text sanitization helpers for uploaded cell values and request payloads."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable

_WHITESPACE_RE = re.compile(r"\s+")


def _strip_control_chars(value: str, *, allow_newlines: bool) -> str:
    cleaned: list[str] = []
    for ch in value:
        if ch == "\n" and allow_newlines:
            cleaned.append(ch)
            continue
        if ch == "\t":
            cleaned.append(" ")
            continue
        if unicodedata.category(ch) in {"Cc", "Cs"}:
            continue
        cleaned.append(ch)
    return "".join(cleaned)


def clean_text(value: str | None, *, allow_newlines: bool = False) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    value = unicodedata.normalize("NFC", value)
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    value = _strip_control_chars(value, allow_newlines=allow_newlines)
    value = value.strip()
    if not allow_newlines:
        value = _WHITESPACE_RE.sub(" ", value)
    else:
        value = "\n".join(line.rstrip() for line in value.split("\n"))
    return value


def clean_single_line(value: str | None) -> str:
    return clean_text(value, allow_newlines=False)


def clean_multiline(value: str | None) -> str:
    return clean_text(value, allow_newlines=True)


def clean_list(values: Iterable[str] | str | None, *, separator: str = ",") -> list[str]:
    """Split, trim and de-duplicate (case-insensitively) a list of tokens."""
    if values is None:
        return []
    if isinstance(values, str):
        values = values.split(separator)
    cleaned: list[str] = []
    seen: set[str] = set()
    for item in values:
        if item is None:
            continue
        item_clean = clean_single_line(str(item))
        if not item_clean:
            continue
        key = item_clean.casefold()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(item_clean)
    return cleaned
