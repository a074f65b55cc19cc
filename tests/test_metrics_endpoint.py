from app.stockbox.core.metrics import metrics
from tests.stockbox_helpers import make_serials


def test_metrics_exposes_request_and_ledger_counters(client, seeded_catalog):
    metrics.reset()
    client.post(
        "/stockbox/inbound/confirm",
        json={"labels": [{"device": "FMC920", "box_code": "A", "serials": make_serials(3)}]},
    )
    client.post("/stockbox/outbound/commit", json={"scan_payload": make_serials(1)[0]})

    response = client.get("/stockbox/ops/metrics")

    assert response.status_code == 200
    body = response.text
    assert "http_requests_total" in body
    assert 'serials_moved_total{direction="in"} 3.0' in body
    assert 'serials_moved_total{direction="out"} 1.0' in body


def test_document_parse_outcomes_are_counted(client, seeded_catalog):
    metrics.reset()
    client.post(
        "/stockbox/inbound/preview",
        files={"file": ("dm.csv", b"Product,Serial,BoxID\nMystery,356938035643809,B-1\n", "text/csv")},
        data={"vendor": "digitalmatter"},
    )
    body = client.get("/stockbox/ops/metrics").text
    assert 'vendor_documents_parsed_total{vendor="digitalmatter",outcome="unknown_devices"} 1.0' in body
