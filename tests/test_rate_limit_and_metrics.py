H = {"X-API-Key": "dev-key", "Content-Type": "application/json"}


def test_metrics_endpoint(client):
    r = client.get("/metrics")
    assert r.status_code == 200
    assert b"http_requests_total" in r.content


def test_issuance_metrics(client, wired):
    assert client.post("/creds/web", headers=H, json={"ip": "10.0.0.5"}).status_code == 200
    assert client.post("/creds/web", headers=H, json={"ip": "192.168.1.1"}).status_code == 400
    text = client.get("/metrics").text
    assert 'ssh_credentials_issued_total{key_type="otp"}' in text
    assert 'ssh_credential_errors_total{error="ip_not_permitted"}' in text


def test_rate_limit_429(client, wired, monkeypatch):
    from vault_ssh.settings import settings
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_REQUESTS", 2)
    monkeypatch.setattr(settings, "RATE_LIMIT_WINDOW_SECONDS", 60)
    assert client.post("/creds/web", headers=H, json={"ip": "10.0.0.5"}).status_code == 200
    assert client.post("/creds/web", headers=H, json={"ip": "10.0.0.6"}).status_code == 200
    assert client.post("/creds/web", headers=H, json={"ip": "10.0.0.7"}).status_code == 429
