import pytest
import requests

import pdf_download
from pdf_download import DownloadError, download_pdf, download_pdf_bytes


class FakeResponse:
    def __init__(self, status_code=200, reason="OK", content=b"%PDF-1.7 fake", content_type="application/pdf"):
        self.status_code = status_code
        self.reason = reason
        self.ok = 200 <= status_code < 300
        self.headers = {"Content-Type": content_type}
        self._content = content

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._content), chunk_size):
            yield self._content[i:i + chunk_size]


def _patch_get(monkeypatch, response=None, exc=None):
    calls = []

    def fake_get(url, **kwargs):
        calls.append((url, kwargs))
        if exc is not None:
            raise exc
        return response

    monkeypatch.setattr(pdf_download.requests, "get", fake_get)
    return calls


def test_download_returns_bytes(monkeypatch):
    calls = _patch_get(monkeypatch, FakeResponse(content=b"%PDF" + b"x" * 20000))

    data = download_pdf_bytes("https://example.com/w9.pdf")

    assert data == b"%PDF" + b"x" * 20000
    assert calls[0][1]["timeout"] == pdf_download.REQUEST_TIMEOUT


def test_non_pdf_content_type_still_downloads(monkeypatch):
    _patch_get(monkeypatch, FakeResponse(content_type="application/octet-stream"))
    assert download_pdf_bytes("https://example.com/form") == b"%PDF-1.7 fake"


def test_http_error_raises_with_status(monkeypatch):
    _patch_get(monkeypatch, FakeResponse(status_code=404, reason="Not Found"))

    with pytest.raises(DownloadError) as excinfo:
        download_pdf_bytes("https://example.com/missing.pdf")

    assert excinfo.value.status_code == 404
    assert "404" in str(excinfo.value)


def test_network_error_raises_without_status(monkeypatch):
    _patch_get(monkeypatch, exc=requests.ConnectionError("connection refused"))

    with pytest.raises(DownloadError) as excinfo:
        download_pdf_bytes("https://example.com/w9.pdf")

    assert excinfo.value.status_code is None


@pytest.mark.parametrize("url", ["", "ftp://example.com/a.pdf", "/local/file.pdf"])
def test_invalid_url_raises(url):
    with pytest.raises(DownloadError):
        download_pdf_bytes(url)


def test_download_pdf_reports_failure(monkeypatch):
    _patch_get(monkeypatch, FakeResponse(status_code=500, reason="Server Error"))

    result = download_pdf("https://example.com/w9.pdf")

    assert not result.success
    assert result.content is None
    assert "500" in result.error


def test_download_pdf_reports_success(monkeypatch):
    _patch_get(monkeypatch, FakeResponse())

    result = download_pdf("https://example.com/w9.pdf")

    assert result.success
    assert result.content == b"%PDF-1.7 fake"
