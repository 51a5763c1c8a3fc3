from fastapi.testclient import TestClient
from commitpact.main import app

client = TestClient(app)

def test_health_ok():
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "request_id" in data

def test_request_id_is_echoed():
    r = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert r.json()["request_id"] == "abc-123"

def test_version_ok():
    r = client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert "version" in data and "git_sha" in data
    assert data["commission"]["public"] == "0.05"

def test_protected_route_rejects_bad_token():
    r = client.get("/wallet", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
