"""
Extraction service gateway.

All outbound calls to the external image-extraction service go through
this class. Services never call it with bare `requests`.

  - Bearer API key injection
  - Retry: max 2 attempts on network errors / 5xx, backoff 1 s → 4 s
  - Timeout: EXTRACTION_TIMEOUT seconds; a timeout is NOT retried and is
    reported as a failed outcome
  - Never raises: every call returns an ExtractionOutcome, callers check .ok

Endpoints (JSON):
    POST {base}/loading-lists  {"imageUrls": [...], "modelId": str}
        → {status?, imageChecks, activities, lineItems, ignoredImages,
           warnings, summary, totalCost?}
    POST {base}/stations       {"signImageUrl": str, "stockImageUrl": str, "modelId": str}
        → {status, message?, productCode?, minQty?, maxQty?, onHandQty?}

Testability: pass a mock `session` to ExtractionGateway() in tests, or
replace app.extensions["extraction_gateway"] with a stub that has the
same two methods.
"""

from __future__ import annotations

import logging
import time

import requests
from flask import current_app

logger = logging.getLogger(__name__)

_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]


class ExtractionOutcome:
    """Structured return value from ExtractionGateway calls.

    Attributes:
        ok:           True if the call returned a parseable 2xx body.
        data:         Parsed JSON body (dict) when ok, else None.
        error:        Human-readable error message or None.
        duration_ms:  Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        data: dict | None = None,
        error: str | None = None,
        duration_ms: int = 0,
    ) -> None:
        self.ok = ok
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    @classmethod
    def failure(cls, error: str, duration_ms: int = 0) -> "ExtractionOutcome":
        return cls(ok=False, data=None, error=error, duration_ms=duration_ms)

    def __repr__(self):
        return f"<ExtractionOutcome ok={self.ok} error={self.error!r}>"


class ExtractionGateway:
    """HTTP client for the extraction service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        default_model: str = "default",
        timeout: int = 120,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.default_model = default_model
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def extract_loading_list(self, image_urls: list[str], model_id: str | None = None) -> ExtractionOutcome:
        """Extract activities and line items from ordered loading-list images."""
        return self._post("/loading-lists", {
            "imageUrls": list(image_urls),
            "modelId": model_id or self.default_model,
        })

    def extract_station(self, sign_url: str, stock_url: str, model_id: str | None = None) -> ExtractionOutcome:
        """Extract product code, min/max and on-hand count from a station pair."""
        return self._post("/stations", {
            "signImageUrl": sign_url,
            "stockImageUrl": stock_url,
            "modelId": model_id or self.default_model,
        })

    def _post(self, path: str, payload: dict) -> ExtractionOutcome:
        if not self.base_url:
            return ExtractionOutcome.failure("Extraction service not configured")

        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        last_error = "Unknown error"
        t_start = time.perf_counter()
        for attempt in range(_RETRY_MAX + 1):
            try:
                resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
            except requests.Timeout:
                logger.warning("Extraction request timed out after %ss url=%s", self.timeout, url)
                return ExtractionOutcome.failure(
                    f"Extraction timed out after {self.timeout}s",
                    duration_ms=int((time.perf_counter() - t_start) * 1000),
                )
            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning("Extraction network error attempt=%d/%d url=%s error=%s",
                               attempt + 1, _RETRY_MAX + 1, url, last_error)
            else:
                duration_ms = int((time.perf_counter() - t_start) * 1000)
                if resp.ok:
                    try:
                        data = resp.json()
                    except ValueError:
                        return ExtractionOutcome.failure("Extraction response was not JSON", duration_ms)
                    if not isinstance(data, dict):
                        return ExtractionOutcome.failure("Extraction response was not an object", duration_ms)
                    return ExtractionOutcome(ok=True, data=data, duration_ms=duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                if resp.status_code < 500:
                    # Client errors will not succeed on retry
                    return ExtractionOutcome.failure(last_error, duration_ms)
                logger.warning("Extraction request failed attempt=%d/%d status=%d url=%s",
                               attempt + 1, _RETRY_MAX + 1, resp.status_code, url)

            if attempt < _RETRY_MAX:
                time.sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        return ExtractionOutcome.failure(
            last_error, duration_ms=int((time.perf_counter() - t_start) * 1000),
        )


def init_extraction_gateway(app) -> None:
    """Attach the configured extraction gateway to app.extensions."""
    app.extensions["extraction_gateway"] = ExtractionGateway(
        app.config.get("EXTRACTION_SERVICE_URL", ""),
        api_key=app.config.get("EXTRACTION_API_KEY", ""),
        default_model=app.config.get("EXTRACTION_DEFAULT_MODEL", "default"),
        timeout=app.config.get("EXTRACTION_TIMEOUT", 120),
    )


def get_extraction_gateway():
    """Return the extraction gateway bound to the current app."""
    return current_app.extensions["extraction_gateway"]
