import pytest
import requests

import fetch
from errors import FetchFailed


class FakeResponse:
    def __init__(self, status_code=200, body=b"", reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self._body = body

    @property
    def ok(self):
        return self.status_code < 400

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def serve(monkeypatch, response=None, error=None):
    calls = []

    def fake_get(url, timeout, stream):
        calls.append(url)
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(fetch.requests, "get", fake_get)
    return calls


def test_returns_body(monkeypatch):
    calls = serve(monkeypatch, FakeResponse(body=b"x" * 200_000))
    assert fetch.fetch_bytes("https://img.example/bg.png") == b"x" * 200_000
    assert calls == ["https://img.example/bg.png"]


def test_non_success_status_fails(monkeypatch):
    serve(monkeypatch, FakeResponse(404, reason="Not Found"))
    with pytest.raises(FetchFailed, match="404 Not Found"):
        fetch.fetch_bytes("https://img.example/missing.png")


def test_network_error_fails(monkeypatch):
    serve(monkeypatch, error=requests.ConnectionError("connection refused"))
    with pytest.raises(FetchFailed, match="connection refused"):
        fetch.fetch_bytes("https://img.example/bg.png")


def test_oversized_body_fails(monkeypatch):
    serve(monkeypatch, FakeResponse(body=b"x" * 2048))
    with pytest.raises(FetchFailed, match="too large"):
        fetch.fetch_bytes("https://img.example/huge.png", max_size=1024)


def test_no_retries(monkeypatch):
    calls = serve(monkeypatch, FakeResponse(503, reason="Service Unavailable"))
    with pytest.raises(FetchFailed):
        fetch.fetch_bytes("https://img.example/bg.png")
    assert len(calls) == 1
