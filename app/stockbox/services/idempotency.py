import hashlib
import json
from dataclasses import dataclass
from datetime import datetime

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.core.metrics import metrics
from app.stockbox.db.models import IdempotencyRecord
from app.stockbox.repos.idempotency import IdempotencyRepository


IDEMPOTENCY_HEADER = "Idempotency-Key"
STATE_IN_PROGRESS = "in_progress"
STATE_SUCCEEDED = "succeeded"
STATE_FAILED = "failed"


@dataclass
class IdempotencyReplay:
    status_code: int
    response_body: dict


class IdempotencyContext:
    def __init__(self, record: IdempotencyRecord, repo: IdempotencyRepository):
        self._record = record
        self._repo = repo

    def _finish(self, state: str, status_code: int, response_body: dict) -> None:
        self._record.status_code = status_code
        self._record.response_body = json.dumps(response_body, default=str)
        self._record.state = state
        self._record.updated_at = datetime.utcnow()
        self._repo.save(self._record)

    def record_success(self, *, status_code: int, response_body: dict) -> None:
        self._finish(STATE_SUCCEEDED, status_code, response_body)

    def record_failure(self, *, status_code: int, response_body: dict) -> None:
        self._finish(STATE_FAILED, status_code, response_body)


class IdempotencyService:
    def __init__(self, db):
        self.repo = IdempotencyRepository(db)

    @staticmethod
    def fingerprint(payload: object) -> str:
        payload_bytes = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(payload_bytes).hexdigest()

    def start(
        self,
        *,
        endpoint: str,
        method: str,
        idempotency_key: str,
        request_hash: str,
    ) -> tuple[IdempotencyContext | None, IdempotencyReplay | None]:
        existing = self.repo.get_by_key(endpoint=endpoint, method=method, idempotency_key=idempotency_key)
        if existing:
            return None, self._handle_existing(existing, request_hash)

        record = IdempotencyRecord(
            endpoint=endpoint,
            method=method,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            state=STATE_IN_PROGRESS,
        )
        try:
            record = self.repo.save(record)
        except IntegrityError:
            self.repo.db.rollback()
            existing = self.repo.get_by_key(endpoint=endpoint, method=method, idempotency_key=idempotency_key)
            return None, self._handle_existing(existing, request_hash)

        return IdempotencyContext(record, self.repo), None

    @staticmethod
    def _handle_existing(existing: IdempotencyRecord | None, request_hash: str) -> IdempotencyReplay:
        if existing is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        if existing.request_hash != request_hash:
            raise AppError(ErrorCatalog.IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD)
        if existing.state == STATE_IN_PROGRESS or existing.response_body is None or existing.status_code is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        return IdempotencyReplay(status_code=existing.status_code, response_body=json.loads(existing.response_body))


def begin_idempotent_request(
    request: Request, db, payload: object
) -> tuple[IdempotencyContext | None, JSONResponse | None]:
    """Start idempotency tracking when the caller sent an ``Idempotency-Key``.

    Returns the context to record the outcome on, or a ready replay response.
    """
    idempotency_key = request.headers.get(IDEMPOTENCY_HEADER)
    if not idempotency_key:
        return None, None
    context, replay = IdempotencyService(db).start(
        endpoint=str(request.url.path),
        method=request.method,
        idempotency_key=idempotency_key,
        request_hash=IdempotencyService.fingerprint(payload),
    )
    if replay:
        metrics.increment_idempotency_replay()
        return None, JSONResponse(
            status_code=replay.status_code,
            content=replay.response_body,
            headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
        )
    request.state.idempotency = context
    return context, None


def upload_request_payload(filename: str | None, content: bytes, **fields) -> dict:
    """Fingerprintable view of a multipart request: the file digest plus its form fields."""
    return {
        "filename": filename,
        "file_sha256": hashlib.sha256(content).hexdigest(),
        **fields,
    }
