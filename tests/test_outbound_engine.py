import pytest
from sqlalchemy import func, select

from app.stockbox.core.error_catalog import AppError
from app.stockbox.db.models import Box, ImportBatch, Item, Movement
from app.stockbox.services.outbound import OutboundEngine
from app.stockbox.services.scan_payload import build_box_token, decode_scan_payload
from tests.stockbox_helpers import make_serials, stock_box


def _box(db, box_code):
    return db.execute(select(Box).where(Box.box_code == box_code)).scalars().one()


def test_box_preview_then_commit_empties_box(db_session, seeded_catalog):
    serials = make_serials(5)
    stock_box(db_session, "FMC920", "041-2", serials)
    payload = decode_scan_payload(build_box_token("041-2", "FMC920", qty=5))
    engine = OutboundEngine(db_session)

    preview = engine.preview(payload)
    assert preview["mode"] == "box"
    assert preview["imei_in"] == 5
    [row] = preview["per_box"]
    assert (row["current_in"], row["will_remove"], row["will_remain"], row["will_be_emptied"]) == (5, 5, 0, True)

    result = engine.commit(payload, actor="picker", preview_serials=preview["serials_in"])
    assert result.committed == 5
    assert result.affected_boxes[0]["status"] == "OUT"
    db_session.expire_all()
    assert _box(db_session, "041-2").status == "OUT"
    assert db_session.execute(select(func.count(Movement.id)).where(Movement.type == "OUT")).scalar_one() == 5


def test_commit_reports_items_moved_out_after_preview(db_session, seeded_catalog):
    serials = make_serials(5)
    stock_box(db_session, "FMC920", "041-2", serials)
    payload = decode_scan_payload(build_box_token("041-2", "FMC920"))
    engine = OutboundEngine(db_session)
    preview = engine.preview(payload)

    engine.commit(decode_scan_payload(serials[0]), actor="other")
    result = engine.commit(payload, actor="picker", preview_serials=preview["serials_in"])

    assert result.committed == 4
    assert result.blocked_not_in_anymore == 1
    assert result.already_out == 0
    assert serials[0] not in result.committed_serials


def test_bulk_preview_spans_boxes_and_reports_missing(db_session, seeded_catalog):
    first, second = make_serials(2), make_serials(2, start=356938035650000)
    stock_box(db_session, "FMC920", "A", first)
    stock_box(db_session, "CV200", "B", second)
    missing = "356938035699999"
    payload = decode_scan_payload(f"{first[0]}\n{second[0]}\n{missing}")

    preview = OutboundEngine(db_session).preview(payload)

    assert preview["mode"] == "bulk"
    assert preview["imei_found"] == 2
    assert preview["imei_missing"] == 1
    assert preview["missing_sample"] == [missing]
    assert sorted(row["box_code"] for row in preview["per_box"]) == ["A", "B"]
    assert all(row["will_remain"] == 1 for row in preview["per_box"])


def test_commit_with_nothing_in_stock(db_session, seeded_catalog):
    serials = make_serials(1)
    stock_box(db_session, "FMC920", "A", serials)
    engine = OutboundEngine(db_session)
    engine.commit(decode_scan_payload(serials[0]), actor="picker")

    with pytest.raises(AppError) as excinfo:
        engine.commit(decode_scan_payload(serials[0]), actor="picker")
    assert excinfo.value.error.code == "NOTHING_TO_COMMIT"
    assert excinfo.value.details["already_out"] == 1
    assert db_session.execute(
        select(func.count(ImportBatch.id)).where(ImportBatch.kind == "OUTBOUND")
    ).scalar_one() == 1


def test_exclusions_keep_items_in_stock(db_session, seeded_catalog):
    serials = make_serials(3)
    stock_box(db_session, "FMC920", "A", serials)
    payload = decode_scan_payload(build_box_token("A", "FMC920"))

    result = OutboundEngine(db_session).commit(payload, actor="picker", exclude_serials=[serials[1]])

    assert result.committed == 2
    assert result.affected_boxes[0]["status"] == "IN"
    item = db_session.execute(select(Item).where(Item.serial == serials[1])).scalars().one()
    assert item.status == "IN"


def test_unknown_box_token(db_session, seeded_catalog):
    with pytest.raises(AppError) as excinfo:
        OutboundEngine(db_session).preview(decode_scan_payload("BOX:nope|DEV:FMC920"))
    assert excinfo.value.error.code == "BOX_NOT_FOUND"


def test_inbound_after_outbound_does_not_restock(db_session, seeded_catalog):
    serials = make_serials(2)
    stock_box(db_session, "FMC920", "A", serials)
    OutboundEngine(db_session).commit(decode_scan_payload(" ".join(serials)), actor="picker")

    outcome = stock_box(db_session, "FMC920", "A", serials)

    assert outcome.totals.skipped_existing == 2
    assert outcome.totals.inserted == 0
    db_session.expire_all()
    assert _box(db_session, "A").status == "OUT"


def test_preview_list_cannot_widen_scan_target(db_session, seeded_catalog):
    scanned = make_serials(1)[0]
    other = make_serials(1, start=356938035650000)[0]
    stock_box(db_session, "FMC920", "A", [scanned])
    stock_box(db_session, "CV200", "B", [other])

    result = OutboundEngine(db_session).commit(
        decode_scan_payload(scanned), actor="picker", preview_serials=[scanned, other]
    )

    assert result.committed_serials == [scanned]
    assert result.not_found == 1
    db_session.expire_all()
    item = db_session.execute(select(Item).where(Item.serial == other)).scalars().one()
    assert item.status == "IN"
    assert _box(db_session, "B").status == "IN"


def test_box_preview_list_ignores_serials_from_other_boxes(db_session, seeded_catalog):
    in_box = make_serials(2)
    elsewhere = make_serials(1, start=356938035650000)
    stock_box(db_session, "FMC920", "A", in_box)
    stock_box(db_session, "FMC920", "B", elsewhere)
    payload = decode_scan_payload(build_box_token("A", "FMC920"))

    result = OutboundEngine(db_session).commit(payload, actor="picker", preview_serials=[*in_box, *elsewhere])

    assert result.committed == 2
    assert result.not_found == 1
    db_session.expire_all()
    assert _box(db_session, "B").status == "IN"
