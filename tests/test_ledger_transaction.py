import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.stockbox.core.error_catalog import AppError, ErrorCatalog
from app.stockbox.services.ledger import StaleLedgerRead, run_ledger_transaction


class _FakeSession:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def test_retries_after_integrity_race_then_succeeds():
    db = _FakeSession()
    attempts = []

    def work():
        attempts.append(1)
        if len(attempts) == 1:
            raise IntegrityError("INSERT INTO boxes", {}, Exception("UNIQUE constraint failed"))
        return "done"

    assert run_ledger_transaction(db, "inbound", work) == "done"
    assert len(attempts) == 2
    assert db.rollbacks == 1
    assert db.commits == 1


def test_exhausted_retries_raise_concurrent_modification():
    db = _FakeSession()

    def work():
        raise StaleLedgerRead("rows changed")

    with pytest.raises(AppError) as excinfo:
        run_ledger_transaction(db, "outbound", work)
    assert excinfo.value.error.code == "CONCURRENT_MODIFICATION"
    assert excinfo.value.details["operation"] == "outbound"
    assert db.commits == 0


def test_domain_errors_roll_back_without_retry():
    db = _FakeSession()

    def work():
        raise AppError(ErrorCatalog.NOTHING_TO_COMMIT)

    with pytest.raises(AppError) as excinfo:
        run_ledger_transaction(db, "outbound", work)
    assert excinfo.value.error.code == "NOTHING_TO_COMMIT"
    assert db.rollbacks == 1


def test_storage_failure_becomes_ledger_write_failed():
    db = _FakeSession()

    def work():
        raise OperationalError("INSERT INTO items", {}, Exception("disk I/O error"))

    with pytest.raises(AppError) as excinfo:
        run_ledger_transaction(db, "inbound", work)
    assert excinfo.value.error.code == "LEDGER_WRITE_FAILED"


def test_lock_timeouts_propagate_unchanged():
    db = _FakeSession()

    def work():
        raise OperationalError("UPDATE items", {}, Exception("database is locked"))

    with pytest.raises(OperationalError):
        run_ledger_transaction(db, "outbound", work)
