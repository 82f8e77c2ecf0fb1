import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import server
from errors import FetchFailed
from overlay_config import PRESETS
from renderer import OverlayRenderer

PAYLOAD = {
    "imageUrl": "https://img.example/bg.png",
    "text": "Hello World",
    "styleConfig": {
        "fontFamily": "Montserrat",
        "backdropColor": "#404040",
        "backdropOpacity": 0.9,
        "textColor": "#FFFFFF",
    },
}


@pytest.fixture()
def client(monkeypatch, registry, font_dir, make_png):
    image = make_png()
    fetched = []

    def fake_fetch(url):
        fetched.append(url)
        return image

    monkeypatch.setattr(server, "fetch_bytes", fake_fetch)
    monkeypatch.setattr(server, "renderer", OverlayRenderer(PRESETS["caption"], registry, font_dir))
    monkeypatch.setattr(server, "API_KEY", "")
    monkeypatch.setattr(server, "metrics", server.Metrics())
    with TestClient(server.app) as c:
        c.fetched = fetched
        yield c


def test_overlay_returns_png(client):
    r = client.post("/api/overlay", json=PAYLOAD)
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert int(r.headers["content-length"]) == len(r.content)
    assert "x-request-id" in r.headers
    assert "X-Text-Truncated" not in r.headers
    assert Image.open(io.BytesIO(r.content)).size == (1024, 1024)
    assert client.fetched == [PAYLOAD["imageUrl"]]


def test_request_id_is_echoed(client):
    r = client.post("/api/overlay", json=PAYLOAD, headers={"X-Request-ID": "abc123"})
    assert r.headers["x-request-id"] == "abc123"


@pytest.mark.parametrize("field", ["imageUrl", "text", "styleConfig"])
def test_missing_top_level_field(client, field):
    body = {k: v for k, v in PAYLOAD.items() if k != field}
    r = client.post("/api/overlay", json=body)
    assert r.status_code == 400
    assert r.json()["message"] == f"Missing required field: {field}"


def test_empty_text_counts_as_missing(client):
    r = client.post("/api/overlay", json={**PAYLOAD, "text": ""})
    assert r.status_code == 400
    assert r.json()["message"] == "Missing required field: text"


@pytest.mark.parametrize("field", ["fontFamily", "backdropColor", "backdropOpacity", "textColor"])
def test_missing_style_field(client, field):
    style = {k: v for k, v in PAYLOAD["styleConfig"].items() if k != field}
    r = client.post("/api/overlay", json={**PAYLOAD, "styleConfig": style})
    assert r.status_code == 400
    assert r.json()["message"] == f"Missing required styleConfig field: {field}"


@pytest.mark.parametrize("override", [
    {"backdropOpacity": 1.5},
    {"textColor": "white"},
    {"backdropColor": "#12"},
])
def test_invalid_style_values(client, override):
    style = {**PAYLOAD["styleConfig"], **override}
    r = client.post("/api/overlay", json={**PAYLOAD, "styleConfig": style})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidRequest"


def test_unknown_font_family(client):
    style = {**PAYLOAD["styleConfig"], "fontFamily": "Wingdings"}
    r = client.post("/api/overlay", json={**PAYLOAD, "styleConfig": style})
    assert r.status_code == 400
    assert r.json()["error"] == "UnknownFontFamily"


def test_fetch_failure_maps_to_bad_gateway(client, monkeypatch):
    def failing(url):
        raise FetchFailed("Failed to fetch image: 404 Not Found")

    monkeypatch.setattr(server, "fetch_bytes", failing)
    r = client.post("/api/overlay", json=PAYLOAD)
    assert r.status_code == 502
    assert r.json()["error"] == "FetchFailed"
    assert "404" in r.json()["message"]
    assert server.metrics.errors_by_kind == {"FetchFailed": 1}


def test_undecodable_image(client, monkeypatch):
    monkeypatch.setattr(server, "fetch_bytes", lambda url: b"<html>nope</html>")
    r = client.post("/api/overlay", json=PAYLOAD)
    assert r.status_code == 422
    assert r.json()["error"] == "DecodeFailed"


def test_truncation_is_reported_in_headers(client):
    r = client.post("/api/overlay", json={**PAYLOAD, "text": " ".join(["caption"] * 60)})
    assert r.status_code == 200
    assert r.headers["X-Text-Truncated"] == "true"
    assert int(r.headers["X-Dropped-Words"]) > 0
    assert server.metrics.total_truncated == 1


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(server, "API_KEY", "s3cret")

    r = client.post("/api/overlay", json=PAYLOAD)
    assert r.status_code == 401

    r = client.post("/api/overlay", json=PAYLOAD, headers={"Authorization": "Token s3cret"})
    assert r.status_code == 401

    r = client.post("/api/overlay", json=PAYLOAD, headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 403
    assert r.json()["message"] == "Invalid API key"

    r = client.post("/api/overlay", json=PAYLOAD, headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200


def test_cors_preflight(client):
    r = client.options("/api/overlay", headers={
        "Origin": "https://app.example",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "Content-Type, Authorization",
    })
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"


def test_get_is_not_allowed(client):
    assert client.get("/api/overlay").status_code == 405


def test_health_and_metrics(client):
    client.post("/api/overlay", json=PAYLOAD)

    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["preset"] == "caption"
    assert "Montserrat" in health["fonts_registered"]

    m = client.get("/metrics").json()
    assert m["total_requests"] == 1
    assert m["total_success"] == 1
    assert set(m["avg_stage_times_s"]) == {"fetch", "render"}
