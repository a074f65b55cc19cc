from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.stockbox.core.errors import setup_exception_handlers
from app.stockbox.core.metrics import metrics


def test_lock_timeout_maps_to_conflict_and_metric():
    metrics.reset()
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/stockbox/locked")
    def locked():
        raise OperationalError("UPDATE items", {}, Exception("database is locked"))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/stockbox/locked")

    assert response.status_code == 409
    assert response.json()["code"] == "LOCK_TIMEOUT"
    content = metrics.render().content.decode("utf-8")
    if metrics.enabled:
        assert "lock_wait_timeout_total 1.0" in content
    else:
        assert "metrics_disabled" in content


def test_unexpected_error_is_internal():
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/stockbox/boom")
    def boom():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/stockbox/boom")

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    assert response.json()["details"] == {"type": "RuntimeError"}
