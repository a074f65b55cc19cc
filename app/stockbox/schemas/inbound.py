from pydantic import BaseModel, Field, field_validator


class ParsedLabelRow(BaseModel):
    device: str
    box_code: str
    serials: list[str]
    qty: int
    scan_token: str


class ParseCounts(BaseModel):
    devices: int
    boxes: int
    items: int


class InboundPreviewResponse(BaseModel):
    vendor: str
    labels: list[ParsedLabelRow]
    counts: ParseCounts
    existing_serials: int
    debug: dict
    trace_id: str


class InboundLabelIn(BaseModel):
    device: str = Field(min_length=1)
    box_code: str = Field(min_length=1, max_length=100)
    serials: list[str] = Field(min_length=1)
    location: str | None = None
    master_box_no: str | None = None

    @field_validator("box_code", mode="before")
    @classmethod
    def strip_box_code(cls, value):
        return value.strip() if isinstance(value, str) else value


class InboundConfirmRequest(BaseModel):
    labels: list[InboundLabelIn] = Field(min_length=1)
    actor: str = "unknown"
    vendor: str | None = None
    source: str | None = None


class InboundTotalsOut(BaseModel):
    inserted: int
    skipped_existing: int
    skipped_duplicate_in_file: int
    skipped_invalid: int
    boxes_created: int
    boxes_reused: int


class InboundBoxOut(BaseModel):
    box_id: str
    device: str
    box_code: str
    location: str
    inserted: int


class InboundConfirmResponse(BaseModel):
    batch_id: str
    totals: InboundTotalsOut
    boxes: list[InboundBoxOut]
    trace_id: str


class ManualInboundRequest(BaseModel):
    device: str = Field(min_length=1)
    box_code: str = Field(min_length=1, max_length=100)
    serials: list[str] = Field(min_length=1)
    location: str | None = None
    master_box_no: str | None = None
    actor: str = "unknown"

    @field_validator("box_code", mode="before")
    @classmethod
    def strip_box_code(cls, value):
        return value.strip() if isinstance(value, str) else value


class ManualPreviewRow(BaseModel):
    device: str
    box_code: str
    location: str
    serials: int
    new: int
    qty: int


class ManualPreviewTotals(BaseModel):
    new: int
    existing: int
    duplicate_in_file: int
    invalid: int


class ExistingSerialOut(BaseModel):
    serial: str
    device: str
    box_code: str
    location: str
    status: str


class ManualPreviewResponse(BaseModel):
    labels: list[ManualPreviewRow]
    totals: ManualPreviewTotals
    duplicates: list[ExistingSerialOut]
    can_confirm: bool
    trace_id: str
