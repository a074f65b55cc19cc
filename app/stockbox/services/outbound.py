"""Outbound stock state engine: ``IN -> OUT`` transitions driven by scans."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import update

from app.stockbox.core.config import settings
from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.core.logging import log_event
from app.stockbox.core.metrics import metrics
from app.stockbox.db.models import BATCH_OUTBOUND, STATUS_IN, STATUS_OUT, Box, Device, Item
from app.stockbox.repos.catalog import DeviceRepository
from app.stockbox.repos.ledger import BoxRepository, ItemRepository
from app.stockbox.services.device_resolver import resolve_device
from app.stockbox.services.ledger import BatchPayload, StaleLedgerRead, StockLedger, run_ledger_transaction
from app.stockbox.services.parsing import clean_serial, unique_in_order
from app.stockbox.services.scan_payload import MODE_BOX, ScanPayload

logger = logging.getLogger(__name__)


@dataclass
class OutboundTarget:
    requested: list[str]
    items: dict[str, Item]
    box: Box | None = None


@dataclass
class OutboundCommitResult:
    batch_id: str
    mode: str
    committed: int
    already_out: int
    not_found: int
    blocked_not_in_anymore: int
    affected_boxes: list[dict] = field(default_factory=list)
    committed_serials: list[str] = field(default_factory=list)

    def totals(self) -> dict[str, int]:
        return {
            "committed": self.committed,
            "already_out": self.already_out,
            "not_found": self.not_found,
            "blocked_not_in_anymore": self.blocked_not_in_anymore,
            "affected_boxes": len(self.affected_boxes),
        }


def _clean_list(values: Iterable[str] | None) -> list[str]:
    return unique_in_order(serial for serial in (clean_serial(value) for value in values or ()) if serial)


class OutboundEngine:
    def __init__(self, db):
        self.db = db
        self.items = ItemRepository(db)
        self.boxes = BoxRepository(db)
        self.ledger = StockLedger(db)

    def _find_box(self, payload: ScanPayload, *, for_update: bool) -> Box:
        catalog = DeviceRepository(self.db).load_catalog()
        device = resolve_device(payload.device, catalog)
        box = None
        if device is not None:
            box = self.boxes.get_by_code(device.id, payload.box_code, for_update=for_update)
        if box is None:
            raise AppError(
                ErrorCatalog.BOX_NOT_FOUND,
                details={"box_code": payload.box_code, "device": payload.device},
            )
        return box

    def _target(self, payload: ScanPayload, *, for_update: bool, extra_serials: Iterable[str] = ()) -> OutboundTarget:
        box = None
        if payload.mode == MODE_BOX:
            box = self._find_box(payload, for_update=for_update)
            if payload.serials:
                requested = list(payload.serials)
            else:
                requested = [item.serial for item in self.items.items_in_box(box.id, status=STATUS_IN)]
        else:
            requested = list(payload.serials)
        found = self.items.find_by_serials([*requested, *extra_serials], for_update=for_update)
        if box is not None:
            found = {serial: item for serial, item in found.items() if item.box_id == box.id}
        return OutboundTarget(requested=requested, items=found, box=box)

    def _box_breakdown(self, removing: dict) -> list[dict]:
        if not removing:
            return []
        current = self.boxes.count_in_items(removing.keys())
        rows = []
        for box_id, will_remove in removing.items():
            box = self.boxes.get(box_id)
            device = self.db.get(Device, box.device_id)
            current_in = current.get(box_id, 0)
            will_remain = max(current_in - will_remove, 0)
            rows.append(
                {
                    "box_id": str(box.id),
                    "box_code": box.box_code,
                    "device": device.display_name if device else None,
                    "location": box.location,
                    "status": box.status,
                    "current_in": current_in,
                    "will_remove": will_remove,
                    "will_remain": will_remain,
                    "will_be_emptied": will_remain == 0,
                }
            )
        rows.sort(key=lambda row: (row["device"] or "", row["box_code"]))
        return rows

    def preview(self, payload: ScanPayload) -> dict:
        target = self._target(payload, for_update=False)
        found = [target.items[serial] for serial in target.requested if serial in target.items]
        in_serials = [item.serial for item in found if item.status == STATUS_IN]
        missing = [serial for serial in target.requested if serial not in target.items]

        removing: dict = {}
        if target.box is not None:
            removing[target.box.id] = 0
        for item in found:
            removing.setdefault(item.box_id, 0)
            if item.status == STATUS_IN:
                removing[item.box_id] += 1

        return {
            "mode": payload.mode,
            "imei_total": len(target.requested),
            "imei_found": len(found),
            "imei_in": len(in_serials),
            "imei_out": len(found) - len(in_serials),
            "imei_missing": len(missing),
            "missing_sample": missing[: settings.MISSING_SAMPLE_SIZE],
            "serials_in": in_serials,
            "per_box": self._box_breakdown(removing),
        }

    def commit(
        self,
        payload: ScanPayload,
        *,
        actor: str,
        preview_serials: Iterable[str] | None = None,
        exclude_serials: Iterable[str] | None = None,
        source: str | None = None,
        trace_id: str | None = None,
    ) -> OutboundCommitResult:
        preview_list = _clean_list(preview_serials) if preview_serials is not None else None
        excluded = set(_clean_list(exclude_serials))

        def work() -> OutboundCommitResult:
            return self._commit_once(
                payload,
                actor=actor,
                preview_list=preview_list,
                excluded=excluded,
                source=source,
                trace_id=trace_id,
            )

        result = run_ledger_transaction(self.db, "outbound", work)
        metrics.record_serials_moved("out", result.committed)
        log_event(
            logger,
            "outbound.committed",
            batch_id=result.batch_id,
            actor=actor,
            mode=payload.mode,
            trace_id=trace_id,
            **result.totals(),
        )
        return result

    def _commit_once(self, payload, *, actor, preview_list, excluded, source, trace_id) -> OutboundCommitResult:
        target = self._target(payload, for_update=True, extra_serials=preview_list or ())
        requested = [serial for serial in target.requested if serial not in excluded]
        out_of_scope: list[str] = []
        if preview_list is not None:
            # A preview list can only narrow the scan target, never widen it.
            in_scope = set(target.items) if target.box is not None else set(requested)
            previewed = [serial for serial in preview_list if serial not in excluded]
            candidates = [serial for serial in previewed if serial in in_scope]
            out_of_scope = [serial for serial in previewed if serial not in in_scope]
        else:
            candidates = requested

        still_in = [target.items[s] for s in candidates if s in target.items and target.items[s].status == STATUS_IN]
        blocked = []
        if preview_list is not None:
            blocked = [s for s in candidates if s in target.items and target.items[s].status == STATUS_OUT]
        blocked_set = set(blocked)
        already_out = [
            s for s in requested
            if s in target.items and target.items[s].status == STATUS_OUT and s not in blocked_set
        ]
        not_found = unique_in_order(
            [*(s for s in [*requested, *candidates] if s not in target.items), *out_of_scope]
        )

        counts = {
            "committed": 0,
            "already_out": len(already_out),
            "not_found": len(not_found),
            "blocked_not_in_anymore": len(blocked),
        }
        if not still_in:
            raise AppError(ErrorCatalog.NOTHING_TO_COMMIT, details=counts)

        now = datetime.utcnow()
        item_ids = [item.id for item in still_in]
        updated = 0
        for start in range(0, len(item_ids), settings.LEDGER_QUERY_CHUNK):
            chunk = item_ids[start : start + settings.LEDGER_QUERY_CHUNK]
            result = self.db.execute(
                update(Item)
                .where(Item.id.in_(chunk), Item.status == STATUS_IN)
                .values(status=STATUS_OUT, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            updated += result.rowcount
        if updated != len(still_in):
            raise StaleLedgerRead(f"expected {len(still_in)} IN items, updated {updated}")
        for item in still_in:
            self.db.refresh(item)

        batch = self.ledger.open_batch(
            BatchPayload(kind=BATCH_OUTBOUND, actor=actor, source=source or payload.mode, trace_id=trace_id)
        )
        self.ledger.record_movements(batch, STATUS_OUT, ((item.serial, item.box_id) for item in still_in))

        removed: dict = defaultdict(int)
        for item in still_in:
            removed[item.box_id] += 1
        statuses = self.ledger.recompute_box_statuses(removed.keys())
        affected = []
        for box_id, count in removed.items():
            box = self.boxes.get(box_id)
            affected.append(
                {
                    "box_id": str(box_id),
                    "box_code": box.box_code,
                    "removed": count,
                    "status": statuses.get(box_id, box.status),
                }
            )
        affected.sort(key=lambda row: row["box_code"])

        result = OutboundCommitResult(
            batch_id=str(batch.id),
            mode=payload.mode,
            committed=len(still_in),
            already_out=counts["already_out"],
            not_found=counts["not_found"],
            blocked_not_in_anymore=counts["blocked_not_in_anymore"],
            affected_boxes=affected,
            committed_serials=sorted(item.serial for item in still_in),
        )
        self.ledger.close_batch(batch, result.totals())
        return result
