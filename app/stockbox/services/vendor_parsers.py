"""Vendor spreadsheet layouts.

Each supplier ships serial lists in its own layout. A layout adapter walks the grid
and feeds ``(device, box_code, serial)`` triples into a :class:`LabelCollector`,
which resolves device names against the catalog and groups serials into labels.
A document either parses completely or fails with a single :class:`AppError`.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from dataclasses import dataclass, field

from app.stockbox.core.config import settings
from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.core.logging import log_event
from app.stockbox.core.metrics import metrics
from app.stockbox.services.device_resolver import CatalogDevice, DeviceCatalog, resolve_device
from app.stockbox.services.parsing import (
    clean_serial,
    digits_only,
    extract_box_code,
    extract_device_prefix,
    cell_text,
    header_index,
    norm_header,
    row_value,
)

logger = logging.getLogger(__name__)

SERIAL_TOKENS = ("imei", "serial")
_MODEL_CODE = re.compile(r"(?:^|[^A-Z0-9]|[A-Z]{4})([A-Z]{2,3}\d{2,4})(?!\d)")


@dataclass(frozen=True)
class ParsedLabel:
    device: str
    box_code: str
    serials: tuple[str, ...]
    qty: int


@dataclass
class ParseOptions:
    device: str | None = None
    box_code: str | None = None


@dataclass
class ParseResult:
    vendor: str
    labels: list[ParsedLabel]
    debug: dict = field(default_factory=dict)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "devices": len({label.device for label in self.labels}),
            "boxes": len(self.labels),
            "items": sum(len(label.serials) for label in self.labels),
        }


class LabelCollector:
    def __init__(self, catalog: DeviceCatalog):
        self.catalog = catalog
        self.unknown: set[str] = set()
        self._groups: dict[tuple[str, str], set[str]] = {}
        self._devices: dict[str, CatalogDevice] = {}

    def resolve(self, raw: str | None) -> CatalogDevice | None:
        raw = (raw or "").strip()
        if not raw:
            return None
        device = resolve_device(raw, self.catalog)
        if device is None:
            self.unknown.add(raw)
        return device

    def add(self, device: CatalogDevice, box_code: str, serial: str) -> None:
        self._devices[device.display_name] = device
        self._groups.setdefault((device.display_name, box_code), set()).add(serial)

    def build(self) -> list[ParsedLabel]:
        labels = []
        for (device_name, box_code), serials in sorted(self._groups.items()):
            if not serials:
                continue
            units = self._devices[device_name].units_per_serial
            labels.append(
                ParsedLabel(
                    device=device_name,
                    box_code=box_code,
                    serials=tuple(sorted(serials)),
                    qty=len(serials) * units,
                )
            )
        return labels


def _malformed(message: str, **details) -> AppError:
    return AppError(ErrorCatalog.MALFORMED_DOCUMENT, details={"message": message, **details})


def _find_header_row(grid: list[list[object]], *required: tuple[str, ...]) -> tuple[int, list[str]] | None:
    limit = min(len(grid), settings.HEADER_SCAN_ROWS)
    for idx in range(limit):
        header = [norm_header(cell) for cell in grid[idx]]
        if all(header_index(header, *tokens) is not None for tokens in required):
            return idx, header
    return None


class VendorLayout:
    name = "base"
    strict_serials = True

    def collect(self, grid, collector: LabelCollector, options: ParseOptions) -> dict:
        raise NotImplementedError

    def serial(self, value: object) -> str | None:
        return clean_serial(value, strict=self.strict_serials)


class BlockLayout(VendorLayout):
    """Repeated horizontal sections, each a ``Box No`` column paired with a serial column."""

    name = "block"

    @staticmethod
    def detect_blocks(header: list[str]) -> list[dict]:
        blocks: list[dict] = []
        for col, name in enumerate(header):
            if not ("box" in name and "no" in name):
                continue
            span_end = min(len(header) - 1, col + settings.BLOCK_SERIAL_SEARCH_SPAN)
            serial_col = None
            for candidate in range(col, span_end + 1):
                if any(token in header[candidate] for token in SERIAL_TOKENS):
                    serial_col = candidate
                    break
            if serial_col is None:
                continue
            if any(abs(block["start"] - col) <= settings.BLOCK_DEDUP_DISTANCE for block in blocks):
                continue
            fallback_col = col + 1 if col + 1 != serial_col else None
            blocks.append({"start": col, "box_col": col, "fallback_col": fallback_col, "serial_col": serial_col})
        return blocks

    @staticmethod
    def _device_above(grid, header_row: int, col: int) -> str | None:
        for idx in range(header_row - 1, -1, -1):
            text = cell_text(row_value(grid[idx], col))
            if text:
                return text
        return None

    def collect(self, grid, collector, options):
        found = _find_header_row(grid, ("box",), SERIAL_TOKENS)
        if found is None:
            raise _malformed("header row with box and serial columns not found")
        header_row, header = found
        blocks = self.detect_blocks(header)
        if not blocks:
            raise _malformed("no box/serial blocks detected", header_row=header_row)

        for block in blocks:
            device = collector.resolve(self._device_above(grid, header_row, block["start"]))
            box_code = None
            for row in grid[header_row + 1 :]:
                box_cell = row_value(row, block["box_col"])
                if not cell_text(box_cell):
                    box_cell = row_value(row, block["fallback_col"])
                if cell_text(box_cell):
                    prefix = extract_device_prefix(box_cell)
                    if prefix:
                        device = collector.resolve(prefix) or device
                    box_code = extract_box_code(box_cell) or box_code
                serial = self.serial(row_value(row, block["serial_col"]))
                if serial is None or device is None or not box_code:
                    continue
                collector.add(device, box_code, serial)
        return {"header_row": header_row, "blocks": blocks}


class ColumnLayout(VendorLayout):
    """One row per serial; box and device are both derived from the carton number."""

    name = "column"

    @staticmethod
    def box_code_from_carton(value: object) -> str | None:
        text = cell_text(value)
        if not text:
            return None
        width = settings.CARTON_BOX_DIGITS
        digits = digits_only(text)
        if len(digits) >= width:
            return digits[-width:]
        return text[-width:]

    @staticmethod
    def guess_device(value: object) -> str | None:
        match = _MODEL_CODE.search(cell_text(value).upper())
        return match.group(1) if match else None

    def collect(self, grid, collector, options):
        found = _find_header_row(grid, SERIAL_TOKENS, ("carton",))
        if found is None:
            raise _malformed("serial and carton columns not found")
        header_row, header = found
        serial_col = header_index(header, *SERIAL_TOKENS)
        carton_col = header_index(header, "carton")
        rows = grid[header_row + 1 :]

        guesses = Counter()
        for row in rows:
            guess = self.guess_device(row_value(row, carton_col))
            if guess:
                guesses[guess] += 1
        if not guesses:
            raise _malformed("device could not be guessed from carton numbers")
        best_guess = guesses.most_common(1)[0][0]
        device = collector.resolve(best_guess)
        debug = {"header_row": header_row, "device_guess": best_guess, "guesses": dict(guesses)}
        if device is None:
            return debug

        for row in rows:
            serial = self.serial(row_value(row, serial_col))
            box_code = self.box_code_from_carton(row_value(row, carton_col))
            if serial is None or not box_code:
                continue
            collector.add(device, box_code, serial)
        return debug


class ExplicitColumnLayout(VendorLayout):
    """Product, serial and box id each have their own column."""

    name = "explicit"

    def collect(self, grid, collector, options):
        found = _find_header_row(grid, ("product",), SERIAL_TOKENS, ("boxid", "box id"))
        if found is None:
            raise _malformed("product, serial and box id columns not found")
        header_row, header = found
        product_col = header_index(header, "product")
        serial_col = header_index(header, *SERIAL_TOKENS)
        box_col = header_index(header, "boxid", "box id")

        for row in grid[header_row + 1 :]:
            serial = self.serial(row_value(row, serial_col))
            if serial is None:
                continue
            raw_device = cell_text(row_value(row, product_col))
            if not raw_device:
                continue
            device = collector.resolve(raw_device)
            box_code = cell_text(row_value(row, box_col))
            if device is None or not box_code:
                continue
            collector.add(device, box_code, serial)
        return {"header_row": header_row}


class SingleBoxLayout(VendorLayout):
    """No usable box identifier: the whole file becomes one synthetic box."""

    name = "single_box"

    def __init__(self, vendor: str):
        self.vendor = vendor

    @staticmethod
    def synthetic_box_code(serials: list[str]) -> str:
        digest = hashlib.sha1(",".join(sorted(serials)).encode("utf-8")).hexdigest()
        return f"SB-{digest[:8].upper()}"

    def collect(self, grid, collector, options):
        raw_device = options.device or settings.SINGLE_BOX_VENDOR_DEVICES.get(self.vendor)
        if not raw_device:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "device is required for single-box vendors", "vendor": self.vendor},
            )
        found = _find_header_row(grid, SERIAL_TOKENS)
        if found is None:
            raise _malformed("serial column not found")
        header_row, header = found
        serial_col = header_index(header, *SERIAL_TOKENS)

        serials = []
        for row in grid[header_row + 1 :]:
            serial = self.serial(row_value(row, serial_col))
            if serial is not None:
                serials.append(serial)
        device = collector.resolve(raw_device)
        if device is None or not serials:
            return {"header_row": header_row}
        box_code = options.box_code or self.synthetic_box_code(serials)
        for serial in serials:
            collector.add(device, box_code, serial)
        return {"header_row": header_row, "box_code": box_code}


VENDOR_LAYOUTS: dict[str, VendorLayout] = {
    "teltonika": BlockLayout(),
    "quicklink": ColumnLayout(),
    "digitalmatter": ExplicitColumnLayout(),
    "truster": SingleBoxLayout("truster"),
}


def get_layout(vendor: str) -> VendorLayout:
    layout = VENDOR_LAYOUTS.get((vendor or "").strip().lower())
    if layout is None:
        raise AppError(
            ErrorCatalog.UNKNOWN_VENDOR,
            details={"vendor": vendor, "supported": sorted(VENDOR_LAYOUTS)},
        )
    return layout


def parse_vendor_document(
    vendor: str,
    grid: list[list[object]],
    catalog: DeviceCatalog,
    options: ParseOptions | None = None,
) -> ParseResult:
    layout = get_layout(vendor)
    vendor_key = vendor.strip().lower()
    collector = LabelCollector(catalog)
    try:
        if not any(grid):
            raise _malformed("document has no rows")
        debug = layout.collect(grid, collector, options or ParseOptions())
        if collector.unknown:
            raise AppError(
                ErrorCatalog.UNKNOWN_DEVICES,
                details={"vendor": vendor_key, "unknown_devices": sorted(collector.unknown)},
            )
        labels = collector.build()
        if not labels:
            raise _malformed("no valid serials found", **debug)
    except AppError as exc:
        metrics.record_document_parsed(vendor_key, exc.error.code.lower())
        raise
    metrics.record_document_parsed(vendor_key, "ok")
    result = ParseResult(vendor=vendor_key, labels=labels, debug=debug)
    log_event(logger, "inbound.parsed", vendor=vendor_key, layout=layout.name, **result.counts)
    return result
