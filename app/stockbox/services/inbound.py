"""Inbound reconciliation of parsed labels against the stock ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable

from app.stockbox.core.config import settings
from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.core.logging import log_event
from app.stockbox.core.metrics import metrics
from app.stockbox.db.models import BATCH_INBOUND, STATUS_IN, Box, Item
from app.stockbox.repos.catalog import DeviceRepository
from app.stockbox.repos.ledger import BoxRepository, ItemRepository
from app.stockbox.services.device_resolver import CatalogDevice, DeviceCatalog, resolve_device
from app.stockbox.services.ledger import BatchPayload, StockLedger, run_ledger_transaction
from app.stockbox.services.parsing import clean_serial

logger = logging.getLogger(__name__)


class DuplicatePolicy(str, Enum):
    SKIP_DUPLICATES = "skip_duplicates"
    BLOCK_ON_DUPLICATE = "block_on_duplicate"


@dataclass(frozen=True)
class InboundLabel:
    device: str
    box_code: str
    serials: tuple[str, ...]
    location: str | None = None
    master_box_no: str | None = None


@dataclass(frozen=True)
class SerialPartition:
    """Accumulator threaded through :func:`partition_label`.

    ``accepted`` holds one tuple of insertable serials per label seen so far.
    """

    accepted: tuple[tuple[str, ...], ...] = ()
    seen: frozenset[str] = frozenset()
    skipped_existing: tuple[str, ...] = ()
    skipped_duplicate_in_file: tuple[str, ...] = ()
    skipped_invalid: int = 0


def partition_label(state: SerialPartition, raw_serials: Iterable[str], existing: frozenset[str]) -> SerialPartition:
    accepted: list[str] = []
    seen = set(state.seen)
    skipped_existing = list(state.skipped_existing)
    skipped_duplicate = list(state.skipped_duplicate_in_file)
    invalid = state.skipped_invalid
    for raw in raw_serials:
        serial = clean_serial(raw)
        if serial is None:
            invalid += 1
            continue
        if serial in seen:
            skipped_duplicate.append(serial)
            continue
        seen.add(serial)
        if serial in existing:
            skipped_existing.append(serial)
            continue
        accepted.append(serial)
    return SerialPartition(
        accepted=state.accepted + (tuple(accepted),),
        seen=frozenset(seen),
        skipped_existing=tuple(skipped_existing),
        skipped_duplicate_in_file=tuple(skipped_duplicate),
        skipped_invalid=invalid,
    )


def partition_serials(labels: Iterable[InboundLabel], existing: frozenset[str]) -> SerialPartition:
    state = SerialPartition()
    for label in labels:
        state = partition_label(state, label.serials, existing)
    return state


def normalize_location(location: str | None) -> str:
    value = (location or "").strip()
    for allowed in settings.ALLOWED_LOCATIONS:
        if value.lower() == allowed.lower():
            return allowed
    return settings.DEFAULT_LOCATION


@dataclass
class InboundTotals:
    inserted: int = 0
    skipped_existing: int = 0
    skipped_duplicate_in_file: int = 0
    skipped_invalid: int = 0
    boxes_created: int = 0
    boxes_reused: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "skipped_existing": self.skipped_existing,
            "skipped_duplicate_in_file": self.skipped_duplicate_in_file,
            "skipped_invalid": self.skipped_invalid,
            "boxes_created": self.boxes_created,
            "boxes_reused": self.boxes_reused,
        }


@dataclass
class InboundOutcome:
    batch_id: str
    totals: InboundTotals
    boxes: list[dict] = field(default_factory=list)


class InboundReconciler:
    def __init__(self, db, policy: DuplicatePolicy = DuplicatePolicy.SKIP_DUPLICATES):
        self.db = db
        self.policy = policy
        self.items = ItemRepository(db)
        self.boxes = BoxRepository(db)
        self.ledger = StockLedger(db)

    def _resolve_labels(self, labels: list[InboundLabel], catalog: DeviceCatalog) -> list[CatalogDevice]:
        resolved = []
        unknown = set()
        for label in labels:
            device = resolve_device(label.device, catalog)
            if device is None:
                unknown.add(label.device)
            resolved.append(device)
        if unknown:
            raise AppError(ErrorCatalog.UNKNOWN_DEVICES, details={"unknown_devices": sorted(unknown)})
        return resolved

    def _existing(self, labels: list[InboundLabel]) -> dict[str, dict]:
        serials = {serial for label in labels for serial in (clean_serial(raw) for raw in label.serials) if serial}
        return self.items.existing_details(serials)

    def _check_block_policy(self, existing: dict[str, dict]) -> None:
        if self.policy is not DuplicatePolicy.BLOCK_ON_DUPLICATE or not existing:
            return
        duplicates = [existing[serial] for serial in sorted(existing)]
        raise AppError(
            ErrorCatalog.DUPLICATE_SERIALS,
            details={"count": len(duplicates), "duplicates": duplicates},
        )

    def preview(self, labels: list[InboundLabel]) -> dict:
        catalog = DeviceRepository(self.db).load_catalog()
        devices = self._resolve_labels(labels, catalog)
        existing = self._existing(labels)
        partition = partition_serials(labels, frozenset(existing))
        rows = []
        for label, device, accepted in zip(labels, devices, partition.accepted):
            rows.append(
                {
                    "device": device.display_name,
                    "box_code": label.box_code,
                    "location": normalize_location(label.location),
                    "serials": len(label.serials),
                    "new": len(accepted),
                    "qty": len(accepted) * device.units_per_serial,
                }
            )
        return {
            "labels": rows,
            "totals": {
                "new": sum(len(accepted) for accepted in partition.accepted),
                "existing": len(partition.skipped_existing),
                "duplicate_in_file": len(partition.skipped_duplicate_in_file),
                "invalid": partition.skipped_invalid,
            },
            "duplicates": [existing[serial] for serial in sorted(existing)],
        }

    def reconcile(
        self,
        labels: list[InboundLabel],
        *,
        actor: str,
        vendor: str | None = None,
        source: str | None = None,
        trace_id: str | None = None,
    ) -> InboundOutcome:
        if not labels:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "labels must not be empty"})

        def work() -> InboundOutcome:
            return self._reconcile_once(labels, actor=actor, vendor=vendor, source=source, trace_id=trace_id)

        outcome = run_ledger_transaction(self.db, "inbound", work)
        metrics.record_serials_moved("in", outcome.totals.inserted)
        log_event(
            logger,
            "inbound.confirmed",
            batch_id=outcome.batch_id,
            actor=actor,
            vendor=vendor,
            policy=self.policy.value,
            trace_id=trace_id,
            **outcome.totals.as_dict(),
        )
        return outcome

    def _reconcile_once(self, labels, *, actor, vendor, source, trace_id) -> InboundOutcome:
        catalog = DeviceRepository(self.db).load_catalog()
        devices = self._resolve_labels(labels, catalog)
        existing = self._existing(labels)
        self._check_block_policy(existing)
        partition = partition_serials(labels, frozenset(existing))

        totals = InboundTotals(
            skipped_existing=len(partition.skipped_existing),
            skipped_duplicate_in_file=len(partition.skipped_duplicate_in_file),
            skipped_invalid=partition.skipped_invalid,
        )
        batch = self.ledger.open_batch(
            BatchPayload(kind=BATCH_INBOUND, actor=actor, vendor=vendor, source=source, trace_id=trace_id)
        )
        now = datetime.utcnow()
        touched: dict[tuple, Box] = {}
        box_rows: dict[tuple, dict] = {}
        moved: list[tuple[str, object]] = []

        for label, device, accepted in zip(labels, devices, partition.accepted):
            if not accepted:
                continue
            key = (device.id, label.box_code)
            box = touched.get(key)
            if box is None:
                box = self._box_for_label(label, device, now, totals)
                touched[key] = box
                box_rows[key] = {
                    "box_id": str(box.id),
                    "device": device.display_name,
                    "box_code": box.box_code,
                    "location": box.location,
                    "inserted": 0,
                }
            self.db.add_all(
                Item(
                    serial=serial,
                    device_id=device.id,
                    box_id=box.id,
                    status=STATUS_IN,
                    created_at=now,
                    updated_at=now,
                )
                for serial in accepted
            )
            moved.extend((serial, box.id) for serial in accepted)
            totals.inserted += len(accepted)
            box_rows[key]["inserted"] += len(accepted)

        self.db.flush()
        self.ledger.record_movements(batch, STATUS_IN, moved)
        self.ledger.recompute_box_statuses(box.id for box in touched.values())
        self.ledger.close_batch(batch, totals.as_dict())
        return InboundOutcome(batch_id=str(batch.id), totals=totals, boxes=list(box_rows.values()))

    def _box_for_label(self, label: InboundLabel, device: CatalogDevice, now: datetime, totals: InboundTotals) -> Box:
        location = normalize_location(label.location) if label.location else None
        box = self.boxes.get_by_code(device.id, label.box_code, for_update=True)
        if box is not None:
            totals.boxes_reused += 1
            if location and box.location != location:
                box.location = location
                box.updated_at = now
            if label.master_box_no and box.master_box_no != label.master_box_no:
                box.master_box_no = label.master_box_no
                box.updated_at = now
            return box
        box = Box(
            device_id=device.id,
            box_code=label.box_code,
            master_box_no=label.master_box_no,
            location=location or settings.DEFAULT_LOCATION,
            status=STATUS_IN,
            created_at=now,
            updated_at=now,
        )
        self.db.add(box)
        self.db.flush()
        totals.boxes_created += 1
        return box


def labels_from_parse(parsed_labels, *, location: str | None = None) -> list[InboundLabel]:
    return [
        InboundLabel(device=label.device, box_code=label.box_code, serials=tuple(label.serials), location=location)
        for label in parsed_labels
    ]


def manual_label(
    *, device: str, box_code: str, serials: Iterable[str], location: str | None, master_box_no: str | None = None
) -> InboundLabel:
    return InboundLabel(
        device=device,
        box_code=box_code.strip(),
        serials=tuple(serials),
        location=location,
        master_box_no=(master_box_no or "").strip() or None,
    )
