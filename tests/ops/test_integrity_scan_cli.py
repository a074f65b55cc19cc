import json
import uuid

from app.ops.integrity_scan import run_scan
from app.stockbox.db.models import Box, Device, Item
from tests.stockbox_helpers import make_serials, stock_box


def test_integrity_scan_no_findings(db_session, seeded_catalog, capsys):
    stock_box(db_session, "FMC920", "A", make_serials(2))

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan("json", True, database_url=database_url)
    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["summary"] == {"total": 0, "critical": 0, "warn": 0}


def test_integrity_scan_critical_exit(db_session, capsys):
    device = Device(id=uuid.uuid4(), canonical_name="OPS2", display_name="OPS2")
    box = Box(id=uuid.uuid4(), device_id=device.id, box_code="X", status="OUT", location="00")
    db_session.add_all([device, box])
    db_session.add(Item(id=uuid.uuid4(), serial="356938035643809", device_id=device.id, box_id=box.id, status="IN"))
    db_session.commit()

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan("text", True, checks=["box_status_derivation"], database_url=database_url)
    output = capsys.readouterr().out
    assert exit_code == 1
    assert "CRITICAL: 1" in output
    assert "box_status_derivation" in output


def test_integrity_scan_disabled(monkeypatch, capsys):
    from app.ops import integrity_scan

    monkeypatch.setattr(integrity_scan.settings, "OPS_ENABLE_INTEGRITY_SCAN", False)
    assert run_scan("json", False, database_url="sqlite+pysqlite:///:memory:") == 2
    assert "disabled" in capsys.readouterr().err
