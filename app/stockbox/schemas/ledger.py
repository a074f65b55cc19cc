from datetime import datetime

from pydantic import BaseModel


class PageMeta(BaseModel):
    limit: int
    offset: int
    total: int


class BoxRow(BaseModel):
    id: str
    device: str
    box_code: str
    master_box_no: str | None
    location: str
    status: str
    created_at: datetime
    updated_at: datetime


class BoxListResponse(BaseModel):
    meta: PageMeta
    rows: list[BoxRow]


class ItemRow(BaseModel):
    serial: str
    status: str
    created_at: datetime
    updated_at: datetime


class MovementRow(BaseModel):
    type: str
    item_serial: str
    box_id: str
    batch_id: str
    actor: str
    created_at: datetime


class BoxDetailResponse(BaseModel):
    box: BoxRow
    in_count: int
    scan_token: str
    items: list[ItemRow]
    movements: list[MovementRow]


class ItemDetailResponse(BaseModel):
    serial: str
    status: str
    device: str
    box_id: str
    box_code: str
    location: str
    created_at: datetime
    updated_at: datetime
    movements: list[MovementRow]


class BatchRow(BaseModel):
    id: str
    kind: str
    actor: str
    vendor: str | None
    source: str | None
    totals: dict
    schema_version: int
    created_at: datetime


class BatchListResponse(BaseModel):
    meta: PageMeta
    rows: list[BatchRow]


class BatchDetailResponse(BaseModel):
    batch: BatchRow
    movements: list[MovementRow]


class StockSummaryRow(BaseModel):
    device: str
    active: bool
    items_in: int
    boxes_in: int


class StockSummaryResponse(BaseModel):
    rows: list[StockSummaryRow]
    total_items_in: int
    total_boxes_in: int
