from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.stockbox.core.config import settings
from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.core.errors import is_lock_timeout
from app.stockbox.core.logging import log_event
from app.stockbox.core.metrics import metrics
from app.stockbox.db.models import BATCH_SCHEMA_VERSION, STATUS_IN, STATUS_OUT, ImportBatch, Movement
from app.stockbox.repos.ledger import BoxRepository, MovementRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleLedgerRead(Exception):
    """Rows changed between the locked read and the conditional write."""


@dataclass
class BatchPayload:
    kind: str
    actor: str
    vendor: str | None = None
    source: str | None = None
    trace_id: str | None = None


class StockLedger:
    """Writes the append-only side of the ledger inside the caller's transaction.

    Every mutation goes through one canonical audit shape: an ``ImportBatch`` per
    operation and one ``Movement`` per item transition. Nothing here commits.
    """

    def __init__(self, db):
        self.db = db
        self.boxes = BoxRepository(db)
        self.movements = MovementRepository(db)

    def open_batch(self, payload: BatchPayload) -> ImportBatch:
        batch = ImportBatch(
            kind=payload.kind,
            actor=payload.actor,
            vendor=payload.vendor,
            source=payload.source,
            trace_id=payload.trace_id,
            totals={},
            schema_version=BATCH_SCHEMA_VERSION,
            created_at=datetime.utcnow(),
        )
        self.db.add(batch)
        self.db.flush()
        return batch

    def close_batch(self, batch: ImportBatch, totals: dict) -> None:
        batch.totals = dict(totals)
        self.db.flush()

    def record_movements(self, batch: ImportBatch, movement_type: str, moved: Iterable[tuple[str, object]]) -> int:
        now = datetime.utcnow()
        rows = [
            Movement(
                type=movement_type,
                item_serial=serial,
                box_id=box_id,
                batch_id=batch.id,
                actor=batch.actor,
                created_at=now,
            )
            for serial, box_id in moved
        ]
        self.movements.add_all(rows)
        return len(rows)

    def recompute_box_statuses(self, box_ids: Iterable) -> dict:
        """Derive ``Box.status`` from its items: IN while any item is still IN."""
        self.db.flush()
        counts = self.boxes.count_in_items(box_ids)
        statuses = {}
        now = datetime.utcnow()
        for box_id, in_count in counts.items():
            box = self.boxes.get(box_id)
            if box is None:
                continue
            status = STATUS_IN if in_count > 0 else STATUS_OUT
            if box.status != status:
                box.status = status
                box.updated_at = now
            statuses[box_id] = status
        self.db.flush()
        return statuses


def run_ledger_transaction(db, operation: str, work: Callable[[], T]) -> T:
    """Run ``work`` and commit, replaying it on a fresh snapshot after unique-key races.

    ``work`` must re-read everything it decides on, since each attempt starts from a
    rolled back session.
    """
    attempts = max(1, settings.LEDGER_WRITE_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except (IntegrityError, StaleLedgerRead) as exc:
            db.rollback()
            metrics.increment_ledger_retry(operation)
            log_event(
                logger,
                "ledger.retry",
                operation=operation,
                attempt=attempt,
                error_class=exc.__class__.__name__,
            )
        except AppError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            if is_lock_timeout(exc):
                raise
            logger.exception("Ledger write failed", extra={"operation": operation})
            raise AppError(
                ErrorCatalog.LEDGER_WRITE_FAILED,
                details={"operation": operation, "type": exc.__class__.__name__},
            ) from exc
    raise AppError(
        ErrorCatalog.CONCURRENT_MODIFICATION,
        details={"operation": operation, "attempts": attempts},
    )
