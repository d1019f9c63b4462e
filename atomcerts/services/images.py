from __future__ import annotations

import base64
import binascii
import logging
import os
import time
from io import BytesIO
from typing import Iterable
from urllib.parse import unquote, unquote_to_bytes, urlparse

import requests
from PIL import Image

logger = logging.getLogger("atomcerts.images")

DEFAULT_TIMEOUT = 8.0
MAX_IMAGE_BYTES = 15 * 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024


class ImageLoadError(RuntimeError):
    """Raised internally when an image URI cannot be turned into pixels."""


def safe_asset_path(root: str, candidate: str | None) -> str | None:
    raw = (candidate or "").strip()
    if not raw:
        return None
    root_real = os.path.realpath(root)
    candidates = [os.path.realpath(os.path.join(root_real, raw.lstrip("/")))]
    if os.path.isabs(raw):
        # absolute paths may already point inside the root; otherwise they
        # are treated as site-relative ("/uploads/logo.png")
        candidates.insert(0, os.path.realpath(raw))
    for resolved in candidates:
        if resolved == root_real or resolved.startswith(f"{root_real}{os.sep}"):
            return resolved
    return None


def decode_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not sep or not header.lower().startswith("data:"):
        raise ImageLoadError("malformed data URI")
    if header.lower().endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ImageLoadError(f"invalid base64 payload: {exc}") from exc
    return unquote_to_bytes(payload)


class ImageLoader:
    """Fetch and decode images referenced by a template.

    One loader is created per render call; results (including failures) are
    cached on the instance so a URI used twice is only fetched once.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        asset_roots: Iterable[str] = (),
        http: requests.Session | None = None,
    ):
        self.timeout = timeout
        self.asset_roots = tuple(asset_roots)
        self.http = http
        self._cache: dict[str, Image.Image | None] = {}

    def load(self, uri: str | None) -> Image.Image | None:
        if not uri:
            return None
        if uri in self._cache:
            return self._cache[uri]
        image: Image.Image | None = None
        try:
            image = self._decode(self._read_bytes(uri))
        except Exception as exc:  # any fetch/decode problem means "no image"
            logger.warning(
                "[render-image-fallback] uri=%s reason=%s", _describe(uri), exc
            )
        self._cache[uri] = image
        return image

    def _read_bytes(self, uri: str) -> bytes:
        if uri.lower().startswith("data:"):
            return decode_data_uri(uri)
        parsed = urlparse(uri)
        scheme = (parsed.scheme or "").lower()
        if scheme in {"http", "https"}:
            return self._fetch(uri)
        if scheme == "file":
            return self._read_local(unquote(parsed.path))
        if not scheme:
            return self._read_local(uri)
        raise ImageLoadError(f"unsupported scheme {scheme!r}")

    def _fetch(self, url: str) -> bytes:
        # requests' timeout bounds each socket read, not the whole body, so the
        # deadline and the size cap are enforced while streaming.
        deadline = time.monotonic() + self.timeout
        getter = self.http.get if self.http is not None else requests.get
        with getter(
            url,
            timeout=self.timeout,
            headers={"Accept": "image/*,*/*;q=0.8", "Accept-Encoding": "identity"},
            stream=True,
        ) as response:
            response.raise_for_status()
            buffer = bytearray()
            while True:
                # read1 returns whatever one socket read produced
                chunk = response.raw.read1(READ_CHUNK_BYTES)
                if not chunk:
                    break
                buffer.extend(chunk)
                if len(buffer) > MAX_IMAGE_BYTES:
                    raise ImageLoadError(f"image larger than {MAX_IMAGE_BYTES} bytes")
                if time.monotonic() > deadline:
                    raise ImageLoadError(f"download exceeded {self.timeout}s")
        if not buffer:
            raise ImageLoadError("empty response body")
        return bytes(buffer)

    def _read_local(self, path: str) -> bytes:
        for root in self.asset_roots:
            resolved = safe_asset_path(root, path)
            if resolved and os.path.isfile(resolved):
                with open(resolved, "rb") as handle:
                    return handle.read()
        raise ImageLoadError(f"{path} is not inside a configured asset directory")

    @staticmethod
    def _decode(data: bytes) -> Image.Image:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGBA")


def _describe(uri: str) -> str:
    if uri.lower().startswith("data:"):
        return uri.split(",", 1)[0] + ",..."
    return uri
