def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json().get("ok") is True

def test_livez(client):
    r = client.get("/livez")
    assert r.status_code == 200
    assert r.json().get("ok") is True

def test_readyz_storage_ok(client, wired):
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["storage"] == {"ok": True, "detail": "ready"}

def test_readyz_storage_unauthenticated(client, wired, monkeypatch):
    storage, _ = wired
    monkeypatch.setattr(storage, "ping", lambda: False)
    r = client.get("/readyz")
    assert r.status_code == 503
    assert r.json().get("ok") is False

def test_readyz_storage_error(client, wired, monkeypatch):
    from vault_ssh.errors import StorageError
    storage, _ = wired

    def boom():
        raise StorageError("vault client unavailable: sealed")
    monkeypatch.setattr(storage, "ping", boom)
    r = client.get("/readyz")
    assert r.status_code == 503
    assert "sealed" in r.json()["storage"]["detail"]
