from fastapi import FastAPI
from starlette.testclient import TestClient

import mind.config as config
from app.middleware import configure_middleware


def _app():
    app = FastAPI()

    @app.get("/ping")
    def ping():
        return {"ok": True}

    configure_middleware(app)
    return app


def test_trusted_hosts_reject_unknown_host(monkeypatch):
    monkeypatch.setattr(config, "TRUSTED_HOSTS", ["mind.example.com"])
    monkeypatch.setattr(config, "CORS_ALLOWED_ORIGINS", [])
    client = TestClient(_app(), base_url="http://mind.example.com")

    assert client.get("/ping").status_code == 200
    assert client.get("/ping", headers={"host": "evil.example.com"}).status_code == 400


def test_cors_allows_configured_origin_only(monkeypatch):
    monkeypatch.setattr(config, "TRUSTED_HOSTS", [])
    monkeypatch.setattr(config, "CORS_ALLOWED_ORIGINS", ["https://app.example.com"])
    client = TestClient(_app())

    allowed = client.get("/ping", headers={"origin": "https://app.example.com"})
    denied = client.get("/ping", headers={"origin": "https://other.example.com"})

    assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
    assert "access-control-allow-credentials" not in allowed.headers
    assert "access-control-allow-origin" not in denied.headers


def test_no_middleware_without_configuration(monkeypatch):
    monkeypatch.setattr(config, "TRUSTED_HOSTS", [])
    monkeypatch.setattr(config, "CORS_ALLOWED_ORIGINS", [])
    client = TestClient(_app())

    response = client.get("/ping", headers={"origin": "https://app.example.com", "host": "anything"})
    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers
