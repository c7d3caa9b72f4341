"""
Blob store gateway.

All binary object storage (captured photos) goes through this module.
Services never call the storage provider directly.

Contract:
    put(path, data, content_type) -> url
    delete(url) -> None   (raises BlobStoreError; callers treat deletes as best-effort)

Backends:
    - HttpBlobStore:   REST object store (PUT object / POST delete), bearer token,
                       retry with backoff on put.
    - MemoryBlobStore: dict-backed store for development and tests, with
                       failure injection for put/delete.

Path convention (kept stable for existing objects):
    sessions/{session_id}/loading-lists/{group_id}/{index}.{ext}
    sessions/{session_id}/stations/{station_id}/{sign|stock}.{ext}

Testability: pass a mock `session` to HttpBlobStore() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import requests
from flask import current_app

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]

_DEFAULT_TIMEOUT = 30

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class BlobStoreError(Exception):
    """Raised when a blob put/delete fails."""


# ── Path helpers ─────────────────────────────────────────────────────────────


def extension_for(filename: str | None, content_type: str | None) -> str:
    """Pick a file extension from the filename, falling back to the MIME type."""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        if ext:
            return ext
    return _EXTENSIONS.get(content_type or "", "jpg")


def group_image_path(session_id: str, group_id: str, index: int, ext: str) -> str:
    return f"sessions/{session_id}/loading-lists/{group_id}/{index}.{ext}"


def station_image_path(session_id: str, station_id: str, slot: str, ext: str) -> str:
    return f"sessions/{session_id}/stations/{station_id}/{slot}.{ext}"


# ── Backends ─────────────────────────────────────────────────────────────────


class MemoryBlobStore:
    """Dict-backed blob store.

    fail_puts / fail_deletes hold paths or URLs that should raise, so tests
    can exercise partial-failure paths.
    """

    def __init__(self, base_url: str = "memory://blobs") -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_puts: set[str] = set()
        self.fail_deletes: set[str] = set()
        self._lock = threading.Lock()

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def put(self, path: str, data: bytes, content_type: str) -> str:
        if path in self.fail_puts:
            raise BlobStoreError(f"put failed for {path}")
        url = self.url_for(path)
        with self._lock:
            self.objects[url] = (data, content_type)
        return url

    def delete(self, url: str) -> None:
        if url in self.fail_deletes:
            raise BlobStoreError(f"delete failed for {url}")
        with self._lock:
            self.objects.pop(url, None)

    def exists(self, url: str) -> bool:
        return url in self.objects

    def clear(self) -> None:
        with self._lock:
            self.objects.clear()
        self.fail_puts.clear()
        self.fail_deletes.clear()

    def ping(self) -> bool:
        return True


class HttpBlobStore:
    """REST object-store backend.

    PUT  {base_url}/{path}           body=bytes, returns {"url": ...}
    POST {base_url}/delete           body={"urls": [url]}
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self, extra: dict | None = None) -> dict:
        headers = dict(extra or {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def put(self, path: str, data: bytes, content_type: str) -> str:
        url = f"{self.base_url}/{path}"
        last_error = "Unknown error"
        for attempt in range(_RETRY_MAX + 1):
            try:
                resp = self.session.put(
                    url,
                    data=data,
                    headers=self._headers({"Content-Type": content_type}),
                    timeout=self.timeout,
                )
                if resp.ok:
                    try:
                        body = resp.json() if resp.content else {}
                    except ValueError:
                        body = {}
                    return body.get("url") or url
                last_error = f"HTTP {resp.status_code}: {resp.text[:300]}"
            except requests.RequestException as exc:
                last_error = str(exc)[:300]

            logger.warning("Blob put failed attempt=%d/%d path=%s error=%s",
                           attempt + 1, _RETRY_MAX + 1, path, last_error)
            if attempt < _RETRY_MAX:
                time.sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        raise BlobStoreError(f"put failed for {path}: {last_error}")

    def delete(self, url: str) -> None:
        try:
            resp = self.session.post(
                f"{self.base_url}/delete",
                json={"urls": [url]},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BlobStoreError(f"delete failed for {url}: {exc}") from exc
        if not resp.ok:
            raise BlobStoreError(f"delete failed for {url}: HTTP {resp.status_code}")

    def ping(self) -> bool:
        resp = self.session.head(self.base_url, headers=self._headers(), timeout=5)
        return resp.status_code < 500


# ── App wiring ───────────────────────────────────────────────────────────────


def init_blob_store(app) -> None:
    """Attach the configured blob store backend to app.extensions."""
    base_url = app.config.get("BLOB_STORE_URL")
    if base_url:
        store = HttpBlobStore(base_url, token=app.config.get("BLOB_STORE_TOKEN", ""))
        logger.info("Blob store: HTTP backend at %s", base_url)
    else:
        store = MemoryBlobStore(app.config.get("BLOB_PUBLIC_BASE_URL", "memory://blobs"))
        if not app.config.get("TESTING"):
            logger.warning("Blob store: BLOB_STORE_URL not set: using in-memory store")
    app.extensions["blob_store"] = store


def get_blob_store():
    """Return the blob store bound to the current app."""
    return current_app.extensions["blob_store"]


def delete_blobs_best_effort(urls, store=None, max_workers: int = 8) -> dict:
    """Delete every URL in parallel; one failure never stops the others.

    Returns:
        {"deleted": int, "failed": int, "failed_urls": [str]}
    """
    urls = [u for u in urls if u]
    if not urls:
        return {"deleted": 0, "failed": 0, "failed_urls": []}
    store = store or get_blob_store()

    def _delete(url):
        try:
            store.delete(url)
            return url, True
        except Exception as exc:
            logger.warning("Failed to delete blob %s: %s", url, exc)
            return url, False

    with ThreadPoolExecutor(max_workers=min(max_workers, len(urls))) as executor:
        outcomes = list(executor.map(_delete, urls))

    failed_urls = [url for url, ok in outcomes if not ok]
    return {
        "deleted": len(outcomes) - len(failed_urls),
        "failed": len(failed_urls),
        "failed_urls": failed_urls,
    }
