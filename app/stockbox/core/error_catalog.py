from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    MALFORMED_DOCUMENT = ErrorDefinition(
        "MALFORMED_DOCUMENT",
        "Document layout not recognized",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    UNKNOWN_DEVICES = ErrorDefinition(
        "UNKNOWN_DEVICES",
        "Device names could not be resolved against the catalog",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    UNKNOWN_VENDOR = ErrorDefinition(
        "UNKNOWN_VENDOR",
        "Vendor layout not registered",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    DUPLICATE_SERIALS = ErrorDefinition(
        "DUPLICATE_SERIALS",
        "Serials already exist in stock",
        status.HTTP_409_CONFLICT,
    )
    INVALID_SCAN_PAYLOAD = ErrorDefinition(
        "INVALID_SCAN_PAYLOAD",
        "Scan payload not recognized",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    BOX_NOT_FOUND = ErrorDefinition(
        "BOX_NOT_FOUND",
        "Box not found",
        status.HTTP_404_NOT_FOUND,
    )
    NOTHING_TO_COMMIT = ErrorDefinition(
        "NOTHING_TO_COMMIT",
        "Nothing to commit",
        status.HTTP_409_CONFLICT,
    )
    CONCURRENT_MODIFICATION = ErrorDefinition(
        "CONCURRENT_MODIFICATION",
        "Stock changed concurrently, retry the operation",
        status.HTTP_409_CONFLICT,
    )
    LEDGER_WRITE_FAILED = ErrorDefinition(
        "LEDGER_WRITE_FAILED",
        "Stock ledger write failed",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    NOT_FOUND = ErrorDefinition(
        "NOT_FOUND",
        "Resource not found",
        status.HTTP_404_NOT_FOUND,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)
