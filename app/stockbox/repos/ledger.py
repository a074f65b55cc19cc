from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, select

from app.stockbox.core.config import settings
from app.stockbox.db.models import STATUS_IN, Box, Device, ImportBatch, Item, Movement


def _chunks(values: list[str], size: int) -> Iterable[list[str]]:
    size = max(1, size)
    for start in range(0, len(values), size):
        yield values[start : start + size]


@dataclass(frozen=True)
class BoxQueryFilters:
    device: str | None = None
    status: str | None = None
    location: str | None = None
    box_code: str | None = None


class ItemRepository:
    def __init__(self, db):
        self.db = db

    def find_by_serials(self, serials: Iterable[str], *, for_update: bool = False) -> dict[str, Item]:
        found: dict[str, Item] = {}
        for chunk in _chunks(sorted(set(serials)), settings.LEDGER_QUERY_CHUNK):
            stmt = select(Item).where(Item.serial.in_(chunk))
            if for_update:
                stmt = stmt.with_for_update()
            for item in self.db.execute(stmt).scalars():
                found[item.serial] = item
        return found

    def existing_details(self, serials: Iterable[str]) -> dict[str, dict]:
        details: dict[str, dict] = {}
        for chunk in _chunks(sorted(set(serials)), settings.LEDGER_QUERY_CHUNK):
            rows = self.db.execute(
                select(Item.serial, Item.status, Box.box_code, Box.location, Device.display_name)
                .join(Box, Item.box_id == Box.id)
                .join(Device, Item.device_id == Device.id)
                .where(Item.serial.in_(chunk))
            ).all()
            for row in rows:
                details[row.serial] = {
                    "serial": row.serial,
                    "device": row.display_name,
                    "box_code": row.box_code,
                    "location": row.location,
                    "status": row.status,
                }
        return details

    def items_in_box(self, box_id, *, status: str | None = None, for_update: bool = False) -> list[Item]:
        stmt = select(Item).where(Item.box_id == box_id).order_by(Item.serial)
        if status:
            stmt = stmt.where(Item.status == status)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().all()

    def get_by_serial(self, serial: str) -> Item | None:
        return self.db.execute(select(Item).where(Item.serial == serial)).scalars().first()

    def in_stock_by_device(self) -> dict:
        rows = self.db.execute(
            select(Item.device_id, func.count(Item.id), func.count(func.distinct(Item.box_id)))
            .where(Item.status == STATUS_IN)
            .group_by(Item.device_id)
        ).all()
        return {row[0]: (row[1], row[2]) for row in rows}


class BoxRepository:
    def __init__(self, db):
        self.db = db

    def get(self, box_id) -> Box | None:
        return self.db.get(Box, box_id)

    def get_by_code(self, device_id, box_code: str, *, for_update: bool = False) -> Box | None:
        stmt = select(Box).where(Box.device_id == device_id, Box.box_code == box_code)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def count_in_items(self, box_ids: Iterable) -> dict:
        ids = list(set(box_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(Item.box_id, func.count(Item.id))
            .where(Item.box_id.in_(ids), Item.status == STATUS_IN)
            .group_by(Item.box_id)
        ).all()
        counts = {box_id: 0 for box_id in ids}
        counts.update({row[0]: row[1] for row in rows})
        return counts

    def list_boxes(self, filters: BoxQueryFilters, *, limit: int, offset: int) -> tuple[list[tuple[Box, Device]], int]:
        stmt = select(Box, Device).join(Device, Box.device_id == Device.id)
        if filters.device:
            stmt = stmt.where(Device.display_name == filters.device)
        if filters.status:
            stmt = stmt.where(Box.status == filters.status)
        if filters.location:
            stmt = stmt.where(Box.location == filters.location)
        if filters.box_code:
            stmt = stmt.where(Box.box_code == filters.box_code)
        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.db.execute(
            stmt.order_by(Device.display_name, Box.box_code).offset(offset).limit(limit)
        ).all()
        return [(row[0], row[1]) for row in rows], total


class MovementRepository:
    def __init__(self, db):
        self.db = db

    def add_all(self, movements: list[Movement]) -> None:
        self.db.add_all(movements)

    def for_box(self, box_id) -> list[Movement]:
        stmt = select(Movement).where(Movement.box_id == box_id).order_by(Movement.created_at, Movement.item_serial)
        return self.db.execute(stmt).scalars().all()

    def for_serial(self, serial: str) -> list[Movement]:
        stmt = select(Movement).where(Movement.item_serial == serial).order_by(Movement.created_at)
        return self.db.execute(stmt).scalars().all()

    def for_batch(self, batch_id) -> list[Movement]:
        stmt = select(Movement).where(Movement.batch_id == batch_id).order_by(Movement.item_serial)
        return self.db.execute(stmt).scalars().all()


class BatchRepository:
    def __init__(self, db):
        self.db = db

    def get(self, batch_id) -> ImportBatch | None:
        return self.db.get(ImportBatch, batch_id)

    def list_batches(self, *, kind: str | None, limit: int, offset: int) -> tuple[list[ImportBatch], int]:
        stmt = select(ImportBatch)
        if kind:
            stmt = stmt.where(ImportBatch.kind == kind)
        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.db.execute(
            stmt.order_by(ImportBatch.created_at.desc()).offset(offset).limit(limit)
        ).scalars().all()
        return rows, total
