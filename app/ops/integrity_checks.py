from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import func, select

from app.stockbox.core.metrics import metrics
from app.stockbox.db.models import STATUS_IN, STATUS_OUT, Box, Item, Movement


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def check_duplicate_serial(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(Item.serial, func.count(Item.id)).group_by(Item.serial).having(func.count(Item.id) > 1)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="duplicate_serial",
            severity=SEVERITY_CRITICAL,
            message="Serial stored on more than one item.",
            entity="items",
            entity_id=None,
            details={"serial": row[0], "count": row[1]},
        )
        for row in rows
    ]
    if findings:
        metrics.increment_invariant_violation("duplicate_serial", len(findings))
    return findings


def check_box_status_derivation(db) -> list[IntegrityFinding]:
    in_counts = dict(
        db.execute(
            select(Item.box_id, func.count(Item.id)).where(Item.status == STATUS_IN).group_by(Item.box_id)
        ).all()
    )
    findings = []
    for box in db.execute(select(Box)).scalars():
        in_count = in_counts.get(box.id, 0)
        expected = STATUS_IN if in_count > 0 else STATUS_OUT
        if box.status == expected:
            continue
        findings.append(
            IntegrityFinding(
                check_id="box_status_derivation",
                severity=SEVERITY_CRITICAL,
                message="Box status does not match the status of its items.",
                entity="boxes",
                entity_id=str(box.id),
                details={"box_code": box.box_code, "status": box.status, "expected": expected, "items_in": in_count},
            )
        )
    if findings:
        metrics.increment_invariant_violation("box_status_derivation", len(findings))
    return findings


def check_movement_completeness(db) -> list[IntegrityFinding]:
    movements: dict[str, dict[str, int]] = defaultdict(lambda: {STATUS_IN: 0, STATUS_OUT: 0})
    for serial, movement_type, count in db.execute(
        select(Movement.item_serial, Movement.type, func.count(Movement.id)).group_by(
            Movement.item_serial, Movement.type
        )
    ).all():
        movements[serial][movement_type] = count

    findings = []
    for item in db.execute(select(Item)).scalars():
        seen = movements.get(item.serial, {STATUS_IN: 0, STATUS_OUT: 0})
        expected = {STATUS_IN: 1, STATUS_OUT: 1 if item.status == STATUS_OUT else 0}
        if seen == expected:
            continue
        findings.append(
            IntegrityFinding(
                check_id="movement_completeness",
                severity=SEVERITY_CRITICAL,
                message="Item status history does not have exactly one movement per transition.",
                entity="items",
                entity_id=str(item.id),
                details={"serial": item.serial, "status": item.status, "movements": dict(seen)},
            )
        )
    if findings:
        metrics.increment_invariant_violation("movement_completeness", len(findings))
    return findings


def check_empty_boxes(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(Box.id, Box.box_code).outerjoin(Item, Item.box_id == Box.id).where(Item.id.is_(None))
    ).all()
    return [
        IntegrityFinding(
            check_id="empty_box",
            severity=SEVERITY_WARN,
            message="Box has no items.",
            entity="boxes",
            entity_id=str(row.id),
            details={"box_code": row.box_code},
        )
        for row in rows
    ]


CHECKS = {
    "duplicate_serial": check_duplicate_serial,
    "box_status_derivation": check_box_status_derivation,
    "movement_completeness": check_movement_completeness,
    "empty_box": check_empty_boxes,
}


def run_integrity_checks(db, only: list[str] | None = None) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    for check_id, check in CHECKS.items():
        if only and check_id not in only:
            continue
        findings.extend(check(db))
    return findings
