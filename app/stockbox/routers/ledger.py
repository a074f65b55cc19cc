from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.db.models import STATUS_IN, Box, Device, ImportBatch, Movement
from app.stockbox.db.session import get_db
from app.stockbox.repos.catalog import DeviceRepository
from app.stockbox.repos.ledger import (
    BatchRepository,
    BoxQueryFilters,
    BoxRepository,
    ItemRepository,
    MovementRepository,
)
from app.stockbox.schemas.ledger import (
    BatchDetailResponse,
    BatchListResponse,
    BoxDetailResponse,
    BoxListResponse,
    ItemDetailResponse,
    StockSummaryResponse,
)
from app.stockbox.services.scan_payload import build_box_token


router = APIRouter()


def _box_row(box: Box, device: Device) -> dict:
    return {
        "id": str(box.id),
        "device": device.display_name,
        "box_code": box.box_code,
        "master_box_no": box.master_box_no,
        "location": box.location,
        "status": box.status,
        "created_at": box.created_at,
        "updated_at": box.updated_at,
    }


def _movement_row(movement: Movement) -> dict:
    return {
        "type": movement.type,
        "item_serial": movement.item_serial,
        "box_id": str(movement.box_id),
        "batch_id": str(movement.batch_id),
        "actor": movement.actor,
        "created_at": movement.created_at,
    }


def _batch_row(batch: ImportBatch) -> dict:
    return {
        "id": str(batch.id),
        "kind": batch.kind,
        "actor": batch.actor,
        "vendor": batch.vendor,
        "source": batch.source,
        "totals": batch.totals or {},
        "schema_version": batch.schema_version,
        "created_at": batch.created_at,
    }


@router.get("/stockbox/boxes", response_model=BoxListResponse)
def list_boxes(
    device: str | None = None,
    status: Literal["IN", "OUT"] | None = None,
    location: str | None = None,
    box_code: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db=Depends(get_db),
):
    filters = BoxQueryFilters(device=device, status=status, location=location, box_code=box_code)
    rows, total = BoxRepository(db).list_boxes(filters, limit=limit, offset=offset)
    return BoxListResponse(
        meta={"limit": limit, "offset": offset, "total": total},
        rows=[_box_row(box, box_device) for box, box_device in rows],
    )


@router.get("/stockbox/boxes/{box_id}", response_model=BoxDetailResponse)
def get_box(box_id: UUID, db=Depends(get_db)):
    box = BoxRepository(db).get(box_id)
    if box is None:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"box_id": str(box_id)})
    device = db.get(Device, box.device_id)
    items = ItemRepository(db).items_in_box(box.id)
    in_count = sum(1 for item in items if item.status == STATUS_IN)
    return BoxDetailResponse(
        box=_box_row(box, device),
        in_count=in_count,
        scan_token=build_box_token(box.box_code, device.display_name, box.master_box_no, in_count),
        items=[
            {"serial": item.serial, "status": item.status, "created_at": item.created_at, "updated_at": item.updated_at}
            for item in items
        ],
        movements=[_movement_row(movement) for movement in MovementRepository(db).for_box(box.id)],
    )


@router.get("/stockbox/items/{serial}", response_model=ItemDetailResponse)
def get_item(serial: str, db=Depends(get_db)):
    item = ItemRepository(db).get_by_serial(serial.strip())
    if item is None:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"serial": serial})
    box = BoxRepository(db).get(item.box_id)
    device = db.get(Device, item.device_id)
    return ItemDetailResponse(
        serial=item.serial,
        status=item.status,
        device=device.display_name,
        box_id=str(box.id),
        box_code=box.box_code,
        location=box.location,
        created_at=item.created_at,
        updated_at=item.updated_at,
        movements=[_movement_row(movement) for movement in MovementRepository(db).for_serial(item.serial)],
    )


@router.get("/stockbox/batches", response_model=BatchListResponse)
def list_batches(
    kind: Literal["INBOUND", "OUTBOUND"] | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db=Depends(get_db),
):
    rows, total = BatchRepository(db).list_batches(kind=kind, limit=limit, offset=offset)
    return BatchListResponse(
        meta={"limit": limit, "offset": offset, "total": total},
        rows=[_batch_row(batch) for batch in rows],
    )


@router.get("/stockbox/batches/{batch_id}", response_model=BatchDetailResponse)
def get_batch(batch_id: UUID, db=Depends(get_db)):
    batch = BatchRepository(db).get(batch_id)
    if batch is None:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"batch_id": str(batch_id)})
    return BatchDetailResponse(
        batch=_batch_row(batch),
        movements=[_movement_row(movement) for movement in MovementRepository(db).for_batch(batch.id)],
    )


@router.get("/stockbox/stock/summary", response_model=StockSummaryResponse)
def stock_summary(db=Depends(get_db)):
    counts = ItemRepository(db).in_stock_by_device()
    rows = []
    for device in DeviceRepository(db).list_devices():
        items_in, boxes_in = counts.get(device.id, (0, 0))
        rows.append(
            {
                "device": device.display_name,
                "active": device.active,
                "items_in": items_in,
                "boxes_in": boxes_in,
            }
        )
    return StockSummaryResponse(
        rows=rows,
        total_items_in=sum(row["items_in"] for row in rows),
        total_boxes_in=sum(row["boxes_in"] for row in rows),
    )
