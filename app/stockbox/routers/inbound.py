from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.stockbox.db.session import get_db
from app.stockbox.repos.catalog import DeviceRepository
from app.stockbox.repos.ledger import ItemRepository
from app.stockbox.schemas.inbound import (
    InboundConfirmRequest,
    InboundConfirmResponse,
    InboundPreviewResponse,
    ManualInboundRequest,
    ManualPreviewResponse,
)
from app.stockbox.services.idempotency import begin_idempotent_request, upload_request_payload
from app.stockbox.services.inbound import (
    DuplicatePolicy,
    InboundLabel,
    InboundReconciler,
    labels_from_parse,
    manual_label,
)
from app.stockbox.services.scan_payload import build_box_token
from app.stockbox.services.spreadsheet import read_grid, read_upload
from app.stockbox.services.vendor_parsers import ParseOptions, ParseResult, parse_vendor_document


router = APIRouter()


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _parse_upload(db, filename: str | None, content: bytes, vendor: str, device: str | None, box_code: str | None) -> ParseResult:
    grid = read_grid(filename, content)
    catalog = DeviceRepository(db).load_catalog()
    options = ParseOptions(device=device or None, box_code=(box_code or "").strip() or None)
    return parse_vendor_document(vendor, grid, catalog, options)


def _confirm_response(request: Request, outcome) -> dict:
    return InboundConfirmResponse(
        batch_id=outcome.batch_id,
        totals=outcome.totals.as_dict(),
        boxes=outcome.boxes,
        trace_id=_trace_id(request),
    ).model_dump(mode="json")


@router.post("/stockbox/inbound/preview", response_model=InboundPreviewResponse)
async def preview_inbound(
    request: Request,
    file: UploadFile = File(...),
    vendor: str = Form(...),
    device: str | None = Form(default=None),
    box_code: str | None = Form(default=None),
    db=Depends(get_db),
):
    content = await read_upload(file)
    result = _parse_upload(db, file.filename, content, vendor, device, box_code)
    serials = [serial for label in result.labels for serial in label.serials]
    existing = ItemRepository(db).find_by_serials(serials)
    return InboundPreviewResponse(
        vendor=result.vendor,
        labels=[
            {
                "device": label.device,
                "box_code": label.box_code,
                "serials": list(label.serials),
                "qty": label.qty,
                "scan_token": build_box_token(label.box_code, label.device, qty=label.qty),
            }
            for label in result.labels
        ],
        counts=result.counts,
        existing_serials=len(existing),
        debug=result.debug,
        trace_id=_trace_id(request),
    )


@router.post("/stockbox/inbound/import", response_model=InboundConfirmResponse, status_code=201)
async def import_inbound(
    request: Request,
    file: UploadFile = File(...),
    vendor: str = Form(...),
    actor: str = Form(default="unknown"),
    location: str | None = Form(default=None),
    device: str | None = Form(default=None),
    box_code: str | None = Form(default=None),
    db=Depends(get_db),
):
    content = await read_upload(file)
    context, replay = begin_idempotent_request(
        request,
        db,
        upload_request_payload(
            file.filename, content, vendor=vendor, actor=actor, location=location, device=device, box_code=box_code
        ),
    )
    if replay:
        return replay
    result = _parse_upload(db, file.filename, content, vendor, device, box_code)
    outcome = InboundReconciler(db, DuplicatePolicy.SKIP_DUPLICATES).reconcile(
        labels_from_parse(result.labels, location=location),
        actor=actor,
        vendor=result.vendor,
        source=file.filename,
        trace_id=_trace_id(request) or None,
    )
    response = _confirm_response(request, outcome)
    if context:
        context.record_success(status_code=201, response_body=response)
    return response


@router.post("/stockbox/inbound/confirm", response_model=InboundConfirmResponse, status_code=201)
def confirm_inbound(
    request: Request,
    payload: InboundConfirmRequest,
    db=Depends(get_db),
):
    context, replay = begin_idempotent_request(request, db, payload.model_dump(mode="json"))
    if replay:
        return replay
    labels = [
        InboundLabel(
            device=label.device,
            box_code=label.box_code.strip(),
            serials=tuple(label.serials),
            location=label.location,
            master_box_no=label.master_box_no,
        )
        for label in payload.labels
    ]
    outcome = InboundReconciler(db, DuplicatePolicy.SKIP_DUPLICATES).reconcile(
        labels,
        actor=payload.actor,
        vendor=payload.vendor,
        source=payload.source,
        trace_id=_trace_id(request) or None,
    )
    response = _confirm_response(request, outcome)
    if context:
        context.record_success(status_code=201, response_body=response)
    return response


def _manual_labels(payload: ManualInboundRequest) -> list[InboundLabel]:
    return [
        manual_label(
            device=payload.device,
            box_code=payload.box_code,
            serials=payload.serials,
            location=payload.location,
            master_box_no=payload.master_box_no,
        )
    ]


@router.post("/stockbox/inbound/manual/preview", response_model=ManualPreviewResponse)
def preview_manual_inbound(
    request: Request,
    payload: ManualInboundRequest,
    db=Depends(get_db),
):
    preview = InboundReconciler(db, DuplicatePolicy.BLOCK_ON_DUPLICATE).preview(_manual_labels(payload))
    return ManualPreviewResponse(
        **preview,
        can_confirm=not preview["duplicates"] and preview["totals"]["new"] > 0,
        trace_id=_trace_id(request),
    )


@router.post("/stockbox/inbound/manual/confirm", response_model=InboundConfirmResponse, status_code=201)
def confirm_manual_inbound(
    request: Request,
    payload: ManualInboundRequest,
    db=Depends(get_db),
):
    context, replay = begin_idempotent_request(request, db, payload.model_dump(mode="json"))
    if replay:
        return replay
    outcome = InboundReconciler(db, DuplicatePolicy.BLOCK_ON_DUPLICATE).reconcile(
        _manual_labels(payload),
        actor=payload.actor,
        vendor="manual",
        source="manual",
        trace_id=_trace_id(request) or None,
    )
    response = _confirm_response(request, outcome)
    if context:
        context.record_success(status_code=201, response_body=response)
    return response
