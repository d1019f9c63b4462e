import base64
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from io import BytesIO

import pytest
import requests
from PIL import Image

from atomcerts.services import images as images_module
from atomcerts.services.images import ImageLoader, decode_data_uri, safe_asset_path


def _png_bytes(size=(4, 3), color=(255, 0, 0, 255)):
    buffer = BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_data_uri_is_decoded_in_process():
    uri = "data:image/png;base64," + base64.b64encode(_png_bytes()).decode("ascii")
    assert decode_data_uri(uri) == _png_bytes()
    image = ImageLoader().load(uri)
    assert image.size == (4, 3)
    assert image.mode == "RGBA"


def test_local_paths_only_inside_asset_roots(tmp_path):
    root = tmp_path / "assets"
    root.mkdir()
    (root / "logo.png").write_bytes(_png_bytes())
    (tmp_path / "secret.png").write_bytes(_png_bytes())

    loader = ImageLoader(asset_roots=[str(root)])
    assert loader.load("/logo.png").size == (4, 3)
    assert loader.load(str(root / "logo.png")) is not None
    assert loader.load("../secret.png") is None
    assert loader.load(str(tmp_path / "secret.png")) is None


def test_safe_asset_path_rejects_traversal(tmp_path):
    root = str(tmp_path)
    assert safe_asset_path(root, "a/../../etc/passwd") is None
    assert safe_asset_path(root, "") is None
    assert safe_asset_path(root, "img/a.png").endswith("img/a.png")

class _Raw:
    def __init__(self, content):
        self._buffer = BytesIO(content)

    def read1(self, amt):
        return self._buffer.read(min(amt, 1000))


class _Response:
    def __init__(self, content, status=200):
        self.raw = _Raw(content)
        self.status_code = status
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True


def test_http_fetch_streams_with_timeout(monkeypatch):
    calls = []
    responses = []

    def fake_get(url, timeout=None, headers=None, stream=False):
        calls.append((url, timeout, stream))
        responses.append(_Response(_png_bytes((8, 8))))
        return responses[-1]

    monkeypatch.setattr(images_module.requests, "get", fake_get)
    loader = ImageLoader(timeout=2.5)
    image = loader.load("https://example.com/logo.png")
    assert image.size == (8, 8)
    # cached per loader
    loader.load("https://example.com/logo.png")
    assert calls == [("https://example.com/logo.png", 2.5, True)]
    assert responses[0].closed


def test_unreachable_or_bad_images_return_none(monkeypatch):
    def fake_get(url, timeout=None, headers=None, stream=False):
        if "invalid" in url:
            raise requests.ConnectionError("no route")
        if "missing" in url:
            return _Response(b"", status=404)
        if "empty" in url:
            return _Response(b"")
        return _Response(b"not an image")

    monkeypatch.setattr(images_module.requests, "get", fake_get)
    loader = ImageLoader()
    assert loader.load("https://nonexistent.invalid/logo.png") is None
    assert loader.load("https://example.com/missing.png") is None
    assert loader.load("https://example.com/empty.png") is None
    assert loader.load("https://example.com/garbage.png") is None
    assert loader.load("ftp://example.com/a.png") is None


def test_oversized_body_stops_while_streaming(monkeypatch):
    response = _Response(b"x" * 5000)
    monkeypatch.setattr(images_module, "MAX_IMAGE_BYTES", 2500)
    monkeypatch.setattr(images_module.requests, "get", lambda url, **kwargs: response)
    assert ImageLoader().load("https://example.com/huge.png") is None
    # stopped after the third 1000-byte chunk
    assert response.raw._buffer.tell() == 3000
    assert response.closed


class _DripHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "image/png")
        self.end_headers()
        try:
            for _ in range(15):
                self.wfile.write(b"\x89")
                self.wfile.flush()
                time.sleep(0.2)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def drip_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _DripHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/logo.png"
    server.shutdown()
    server.server_close()


def test_slow_body_is_cut_off_at_the_deadline(drip_server):
    loader = ImageLoader(timeout=0.5)
    started = time.monotonic()
    assert loader.load(drip_server) is None
    assert time.monotonic() - started < 1.5
