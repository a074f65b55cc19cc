from __future__ import annotations

import re
from typing import Iterable


SERIAL_MIN_DIGITS = 14
SERIAL_MAX_DIGITS = 17
STRICT_SERIAL_DIGITS = 15

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")
_LETTERS = re.compile(r"[A-Za-z]")


def cell_text(value: object) -> str:
    """Render a spreadsheet cell the way it reads on screen.

    Numeric serials stored as floats come back as ``356938035643809.0``; integral
    floats are rendered without the fractional part.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    text = str(value).strip()
    if text.endswith(".0") and text[:-2].isdigit():
        return text[:-2]
    return text


def norm_header(value: object) -> str:
    return _WHITESPACE.sub(" ", cell_text(value).lower()).strip()


def digits_only(value: object) -> str:
    return _NON_DIGITS.sub("", cell_text(value))


def clean_serial(value: object, *, strict: bool = False) -> str | None:
    digits = digits_only(value)
    if strict:
        return digits if len(digits) == STRICT_SERIAL_DIGITS else None
    if SERIAL_MIN_DIGITS <= len(digits) <= SERIAL_MAX_DIGITS:
        return digits
    return None


def has_letters(value: str) -> bool:
    return bool(_LETTERS.search(value or ""))


def split_dash_parts(value: object) -> list[str]:
    return [part.strip() for part in cell_text(value).split("-") if part.strip()]


def extract_box_code(value: object) -> str | None:
    """``FMC9202MAUWU-041-2`` -> ``041-2``; ``A-17`` -> ``17``; ``12345`` -> ``12345``."""
    parts = split_dash_parts(value)
    if not parts:
        return None
    if len(parts) >= 3 and has_letters(parts[0]):
        return f"{parts[1]}-{parts[2]}"
    if len(parts) == 2:
        return parts[1]
    return parts[-1]


def extract_device_prefix(value: object) -> str | None:
    text = cell_text(value)
    if "-" not in text:
        return None
    prefix = text.split("-", 1)[0].strip()
    if not prefix or not has_letters(prefix):
        return None
    return prefix


def header_index(header: list[str], *tokens: str, exclude: Iterable[int] = ()) -> int | None:
    """First column whose normalized header contains any of ``tokens``."""
    skipped = set(exclude)
    for idx, name in enumerate(header):
        if idx in skipped:
            continue
        if any(token in name for token in tokens):
            return idx
    return None


def row_value(row: list[object], idx: int | None) -> object:
    if idx is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]


def unique_in_order(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
