from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.db.session import get_db
from app.stockbox.schemas.outbound import (
    OutboundCommitRequest,
    OutboundCommitResponse,
    OutboundPreviewRequest,
    OutboundPreviewResponse,
)
from app.stockbox.services.idempotency import begin_idempotent_request, upload_request_payload
from app.stockbox.services.outbound import OutboundEngine
from app.stockbox.services.scan_payload import MODE_BULK, ScanPayload, decode_scan_payload, serials_from_grid
from app.stockbox.services.spreadsheet import read_grid, read_upload


router = APIRouter()


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _commit_response(request: Request, result) -> dict:
    return OutboundCommitResponse(
        batch_id=result.batch_id,
        mode=result.mode,
        committed=result.committed,
        already_out=result.already_out,
        not_found=result.not_found,
        blocked_not_in_anymore=result.blocked_not_in_anymore,
        affected_boxes=result.affected_boxes,
        committed_serials=result.committed_serials,
        trace_id=_trace_id(request),
    ).model_dump(mode="json")


def _report_scan(filename: str | None, content: bytes) -> ScanPayload:
    serials = serials_from_grid(read_grid(filename, content))
    if not serials:
        raise AppError(ErrorCatalog.MALFORMED_DOCUMENT, details={"message": "no serials found in report"})
    return ScanPayload(mode=MODE_BULK, serials=tuple(serials))


def _split_serials(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [token for token in value.replace(";", ",").replace("\n", ",").split(",") if token.strip()]


@router.post("/stockbox/outbound/preview", response_model=OutboundPreviewResponse)
def preview_outbound(request: Request, payload: OutboundPreviewRequest, db=Depends(get_db)):
    preview = OutboundEngine(db).preview(decode_scan_payload(payload.scan_payload))
    return OutboundPreviewResponse(**preview, trace_id=_trace_id(request))


@router.post("/stockbox/outbound/commit", response_model=OutboundCommitResponse)
def commit_outbound(request: Request, payload: OutboundCommitRequest, db=Depends(get_db)):
    context, replay = begin_idempotent_request(request, db, payload.model_dump(mode="json"))
    if replay:
        return replay
    scan = decode_scan_payload(payload.scan_payload)
    result = OutboundEngine(db).commit(
        scan,
        actor=payload.actor,
        preview_serials=payload.preview_serials,
        exclude_serials=payload.exclude_serials,
        trace_id=_trace_id(request) or None,
    )
    response = _commit_response(request, result)
    if context:
        context.record_success(status_code=200, response_body=response)
    return response


@router.post("/stockbox/outbound/report/preview", response_model=OutboundPreviewResponse)
async def preview_outbound_report(request: Request, file: UploadFile = File(...), db=Depends(get_db)):
    content = await read_upload(file)
    preview = OutboundEngine(db).preview(_report_scan(file.filename, content))
    return OutboundPreviewResponse(**preview, trace_id=_trace_id(request))


@router.post("/stockbox/outbound/report/commit", response_model=OutboundCommitResponse)
async def commit_outbound_report(
    request: Request,
    file: UploadFile = File(...),
    actor: str = Form(default="unknown"),
    preview_serials: str | None = Form(default=None),
    exclude_serials: str | None = Form(default=None),
    db=Depends(get_db),
):
    content = await read_upload(file)
    context, replay = begin_idempotent_request(
        request,
        db,
        upload_request_payload(
            file.filename,
            content,
            actor=actor,
            preview_serials=preview_serials,
            exclude_serials=exclude_serials,
        ),
    )
    if replay:
        return replay
    result = OutboundEngine(db).commit(
        _report_scan(file.filename, content),
        actor=actor,
        preview_serials=_split_serials(preview_serials),
        exclude_serials=_split_serials(exclude_serials),
        source=file.filename,
        trace_id=_trace_id(request) or None,
    )
    response = _commit_response(request, result)
    if context:
        context.record_success(status_code=200, response_body=response)
    return response
