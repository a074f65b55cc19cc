from __future__ import annotations

import re
from dataclasses import dataclass

from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.services.parsing import clean_serial, unique_in_order


MODE_SERIAL = "serial"
MODE_BOX = "box"
MODE_BULK = "bulk"

_TOKEN_SPLIT = re.compile(r"[\s,;]+")


@dataclass(frozen=True)
class ScanPayload:
    mode: str
    serials: tuple[str, ...] = ()
    box_code: str | None = None
    device: str | None = None
    master_box_no: str | None = None
    qty: int | None = None


def build_box_token(box_code: str, device: str, master_box_no: str | None = None, qty: int | None = None) -> str:
    parts = [f"BOX:{box_code}", f"DEV:{device}"]
    if master_box_no:
        parts.append(f"MASTER:{master_box_no}")
    if qty is not None:
        parts.append(f"QTY:{qty}")
    return "|".join(parts)


def _parse_box_token(text: str) -> ScanPayload | None:
    fields: dict[str, str] = {}
    for part in text.split("|"):
        key, sep, value = part.partition(":")
        if not sep:
            continue
        fields[key.strip().upper()] = value.strip()
    if "BOX" not in fields and "DEV" not in fields:
        return None
    if not fields.get("BOX") or not fields.get("DEV"):
        raise AppError(
            ErrorCatalog.INVALID_SCAN_PAYLOAD,
            details={"message": "box token requires BOX and DEV", "keys": sorted(fields)},
        )
    qty = fields.get("QTY")
    legacy_serials = [clean_serial(value) for value in fields.get("IMEI", "").split(",")]
    return ScanPayload(
        mode=MODE_BOX,
        serials=tuple(unique_in_order(serial for serial in legacy_serials if serial)),
        box_code=fields["BOX"],
        device=fields["DEV"],
        master_box_no=fields.get("MASTER") or None,
        qty=int(qty) if qty and qty.isdigit() else None,
    )


def decode_scan_payload(text: str | None) -> ScanPayload:
    """Classify scanner input as one serial, a box label token, or a bulk list."""
    raw = (text or "").strip()
    if not raw:
        raise AppError(ErrorCatalog.INVALID_SCAN_PAYLOAD, details={"message": "scan payload is empty"})

    if ":" in raw:
        payload = _parse_box_token(raw)
        if payload is not None:
            return payload

    single = clean_serial(raw)
    if single:
        return ScanPayload(mode=MODE_SERIAL, serials=(single,))

    serials = unique_in_order(
        serial for serial in (clean_serial(token) for token in _TOKEN_SPLIT.split(raw)) if serial
    )
    if not serials:
        raise AppError(ErrorCatalog.INVALID_SCAN_PAYLOAD, details={"message": "no serials found in scan payload"})
    return ScanPayload(mode=MODE_BULK, serials=tuple(serials))


def serials_from_grid(grid: list[list[object]]) -> list[str]:
    """Every serial-looking cell of a report sheet, first occurrence order."""
    return unique_in_order(
        serial for row in grid for serial in (clean_serial(cell) for cell in row) if serial
    )
