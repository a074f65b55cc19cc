import pytest
from sqlalchemy import func, select

from app.stockbox.core.error_catalog import AppError
from app.stockbox.db.models import Box, ImportBatch, Item, Movement
from app.stockbox.repos.ledger import MovementRepository
from app.stockbox.services.inbound import (
    DuplicatePolicy,
    InboundLabel,
    InboundReconciler,
    manual_label,
    normalize_location,
    partition_serials,
)
from tests.stockbox_helpers import make_serials, stock_box


def test_partition_serials_classifies_each_serial_once():
    labels = [
        InboundLabel(device="FMC920", box_code="1", serials=("356938035640000", "356938035640001", "bad")),
        InboundLabel(device="FMC920", box_code="2", serials=("356938035640001", "356938035640002")),
    ]
    partition = partition_serials(labels, frozenset({"356938035640002"}))
    assert partition.accepted == (("356938035640000", "356938035640001"), ())
    assert partition.skipped_duplicate_in_file == ("356938035640001",)
    assert partition.skipped_existing == ("356938035640002",)
    assert partition.skipped_invalid == 1


def test_normalize_location():
    assert normalize_location("cabinet") == "Cabinet"
    assert normalize_location(" 6 ") == "6"
    assert normalize_location("garage") == "00"
    assert normalize_location(None) == "00"


def test_inbound_skips_existing_serials(db_session, seeded_catalog):
    serials = make_serials(10)
    stock_box(db_session, "FMC920", "040-1", serials[:2])

    outcome = stock_box(db_session, "FMC920", "041-2", serials)

    assert outcome.totals.inserted == 8
    assert outcome.totals.skipped_existing == 2
    assert outcome.totals.boxes_created == 1
    assert len(MovementRepository(db_session).for_batch(outcome.batch_id)) == 8
    assert db_session.execute(select(func.count(ImportBatch.id))).scalar_one() == 2
    box = db_session.execute(select(Box).where(Box.box_code == "041-2")).scalars().one()
    assert box.status == "IN"
    assert box.location == "00"


def test_inbound_reuses_existing_box_and_updates_location(db_session, seeded_catalog):
    serials = make_serials(4)
    stock_box(db_session, "FMC920", "041-2", serials[:2])
    outcome = stock_box(db_session, "fmc-920", "041-2", serials[2:], location="6")

    assert outcome.totals.boxes_reused == 1
    assert outcome.totals.boxes_created == 0
    boxes = db_session.execute(select(Box)).scalars().all()
    assert len(boxes) == 1
    assert boxes[0].location == "6"
    assert db_session.execute(select(func.count(Item.id)).where(Item.box_id == boxes[0].id)).scalar_one() == 4


def test_inbound_rerun_is_idempotent(db_session, seeded_catalog):
    serials = make_serials(3)
    stock_box(db_session, "CV200", "02501", serials)
    outcome = stock_box(db_session, "CV200", "02501", serials)

    assert outcome.totals.inserted == 0
    assert outcome.totals.skipped_existing == 3
    assert db_session.execute(select(func.count(Item.id))).scalar_one() == 3
    assert db_session.execute(select(func.count(Movement.id))).scalar_one() == 3


def test_inbound_unknown_device_writes_nothing(db_session, seeded_catalog):
    with pytest.raises(AppError) as excinfo:
        stock_box(db_session, "Mystery", "1", make_serials(2))
    assert excinfo.value.error.code == "UNKNOWN_DEVICES"
    assert db_session.execute(select(func.count(ImportBatch.id))).scalar_one() == 0


def test_manual_inbound_blocks_on_duplicates(db_session, seeded_catalog):
    serials = make_serials(3)
    stock_box(db_session, "FMC130", "A-1", serials[:1])
    reconciler = InboundReconciler(db_session, DuplicatePolicy.BLOCK_ON_DUPLICATE)
    label = manual_label(device="FMC130", box_code=" A-2 ", serials=serials, location="1")

    preview = reconciler.preview([label])
    assert preview["totals"] == {"new": 2, "existing": 1, "duplicate_in_file": 0, "invalid": 0}
    assert preview["duplicates"][0]["box_code"] == "A-1"

    with pytest.raises(AppError) as excinfo:
        reconciler.reconcile([label], actor="tester", vendor="manual")
    assert excinfo.value.error.code == "DUPLICATE_SERIALS"
    assert excinfo.value.details["count"] == 1
    assert db_session.execute(select(func.count(Item.id))).scalar_one() == 1


def test_units_per_serial_scales_quantity(db_session):
    from app.stockbox.db.seed import run_seed

    run_seed(db_session, [("Oyster3", 2)])
    label = manual_label(device="Oyster3", box_code="P-1", serials=make_serials(3), location=None)
    preview = InboundReconciler(db_session).preview([label])
    assert preview["labels"][0]["qty"] == 6
