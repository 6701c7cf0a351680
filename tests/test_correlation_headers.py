def test_correlation_headers_present(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert "X-Correlation-Id" in resp.headers
    assert "X-Request-Id" in resp.headers
    trace_id = resp.headers.get("X-Trace-Id")
    assert trace_id is None or len(trace_id) == 32


def test_incoming_ids_are_echoed(client):
    resp = client.get("/livez", headers={"X-Request-Id": "req-1", "X-Correlation-Id": "corr-1"})
    assert resp.headers["X-Request-Id"] == "req-1"
    assert resp.headers["X-Correlation-Id"] == "corr-1"
