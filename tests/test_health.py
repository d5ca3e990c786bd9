from app.pdv.middleware.trace import resolve_trace_id


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["trace_id"]


def test_ready(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_trace_id_is_echoed(client):
    response = client.get("/health", headers={"X-Trace-ID": "trace-abc"})
    assert response.headers["X-Trace-ID"] == "trace-abc"
    assert response.json()["trace_id"] == "trace-abc"


def test_oversized_trace_id_is_replaced(client):
    response = client.get("/health", headers={"X-Trace-ID": "x" * 500})
    trace_id = response.headers["X-Trace-ID"]
    assert trace_id != "x" * 500
    assert len(trace_id) == 36
    assert response.json()["trace_id"] == trace_id


def test_resolve_trace_id():
    assert resolve_trace_id(" trace-1 ") == "trace-1"
    assert len(resolve_trace_id(None)) == 36
    assert len(resolve_trace_id("bad\x01id")) == 36
