from pydantic import BaseModel, Field


class OutboundPreviewRequest(BaseModel):
    scan_payload: str = Field(min_length=1)


class OutboundCommitRequest(BaseModel):
    scan_payload: str = Field(min_length=1)
    actor: str = "unknown"
    preview_serials: list[str] | None = None
    exclude_serials: list[str] | None = None


class BoxBreakdownRow(BaseModel):
    box_id: str
    box_code: str
    device: str | None
    location: str
    status: str
    current_in: int
    will_remove: int
    will_remain: int
    will_be_emptied: bool


class OutboundPreviewResponse(BaseModel):
    mode: str
    imei_total: int
    imei_found: int
    imei_in: int
    imei_out: int
    imei_missing: int
    missing_sample: list[str]
    serials_in: list[str]
    per_box: list[BoxBreakdownRow]
    trace_id: str


class AffectedBoxRow(BaseModel):
    box_id: str
    box_code: str
    removed: int
    status: str


class OutboundCommitResponse(BaseModel):
    batch_id: str
    mode: str
    committed: int
    already_out: int
    not_found: int
    blocked_not_in_anymore: int
    affected_boxes: list[AffectedBoxRow]
    committed_serials: list[str]
    trace_id: str
