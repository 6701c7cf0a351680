import logging


def test_http_request_logging(client, caplog):
    caplog.set_level(logging.DEBUG)
    r = client.get("/healthz")
    assert r.status_code == 200
    assert any(rec.name == "vault_ssh.request" and rec.msg == "request" for rec in caplog.records)


def test_issue_response_logging_omits_secret(client, wired, caplog):
    caplog.set_level(logging.INFO)
    h = {"X-API-Key": "dev-key", "Content-Type": "application/json"}
    r = client.post("/creds/web", headers=h, json={"ip": "10.0.0.5"})
    assert r.status_code == 200
    otp = r.json()["data"]["key"]
    recs = [rec for rec in caplog.records if rec.name == "vault_ssh.response" and rec.msg == "creds_issue"]
    assert recs
    assert recs[0].extra["role"] == "web" and recs[0].extra["key_type"] == "otp"
    assert all(otp not in str(getattr(rec, "extra", "")) for rec in caplog.records)


def test_internal_error_logged(client, wired, storage_without_host_key, monkeypatch, caplog):
    import vault_ssh.routes.creds as creds_route
    caplog.set_level(logging.INFO)
    monkeypatch.setattr(creds_route, "get_storage", lambda: storage_without_host_key)
    h = {"X-API-Key": "dev-key", "Content-Type": "application/json"}
    assert client.post("/creds/dyn", headers=h, json={"ip": "10.1.0.1"}).status_code == 500
    assert any(rec.name == "vault_ssh.errors" and rec.extra.get("error") == "host_key_not_found" for rec in caplog.records)
