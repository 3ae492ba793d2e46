"""HTTP client with retry/backoff and request metrics."""
from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from . import config

logger = logging.getLogger(__name__)

REQUEST_KINDS = ("places", "relay")
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RequestMetrics:
    network_places: int = 0
    network_relay: int = 0
    failures_places: int = 0
    failures_relay: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def places_count(self) -> int:
        return self.network_places

    @property
    def relay_count(self) -> int:
        return self.network_relay

    def inc_network(self, kind: str) -> None:
        self._inc("network", kind)

    def inc_failure(self, kind: str) -> None:
        self._inc("failures", kind)

    def _inc(self, prefix: str, kind: str) -> None:
        if kind not in REQUEST_KINDS:
            raise ValueError(f"Unknown request kind: {kind}")
        attr = f"{prefix}_{kind}"
        with self._lock:
            setattr(self, attr, getattr(self, attr) + 1)


class HttpClient:
    """JSON POST client shared by the Places and relay clients.

    Transport errors and ``RETRYABLE_STATUSES`` are retried up to
    ``retry_max`` attempts in total; any other non-2xx status raises
    ``requests.HTTPError`` at once.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: int = config.HTTP_TIMEOUT_SECONDS,
        retry_max: int = config.HTTP_RETRY_MAX,
        backoff_base: float = config.HTTP_BACKOFF_BASE,
        backoff_max: float = config.HTTP_BACKOFF_MAX,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = max(1, int(retry_max))
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()

    def headers_for(
        self,
        field_mask: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Goog-Api-Key"] = self.api_key
        if field_mask:
            headers["X-Goog-FieldMask"] = field_mask
        headers.update(extra_headers or {})
        return headers

    def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        field_mask: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        headers = self.headers_for(field_mask, extra_headers)
        payload = json.dumps(body)
        attempt = 0
        while True:
            attempt += 1
            last_try = attempt >= self.retry_max
            try:
                resp = self.session.post(url, data=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                logger.warning("POST %s failed (attempt %s/%s): %s", url, attempt, self.retry_max, exc)
                if last_try:
                    raise
                time.sleep(self.retry_delay(attempt))
                continue

            if 200 <= resp.status_code < 300:
                return self._decode(resp, url)

            if resp.status_code not in RETRYABLE_STATUSES or last_try:
                logger.error("HTTP %s from %s", resp.status_code, url)
                resp.raise_for_status()
                # raise_for_status is a no-op on 1xx/3xx
                raise requests.HTTPError(f"Unexpected HTTP {resp.status_code} from {url}", response=resp)

            logger.warning("HTTP %s from %s (attempt %s/%s)", resp.status_code, url, attempt, self.retry_max)
            time.sleep(self.retry_delay(attempt, resp))

    def retry_delay(self, attempt: int, resp: Optional[requests.Response] = None) -> float:
        """Seconds to wait before the next attempt.

        A numeric ``Retry-After`` header wins, capped at ``backoff_max``.
        Otherwise exponential backoff with up to ``backoff_base`` of jitter.
        """
        retry_after = resp.headers.get("Retry-After") if resp is not None else None
        if retry_after:
            try:
                return max(0.0, min(float(retry_after), self.backoff_max))
            except ValueError:
                logger.debug("Ignoring non-numeric Retry-After %r", retry_after)
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        return base + random.uniform(0, self.backoff_base)

    @staticmethod
    def _decode(resp: requests.Response, url: str) -> Dict[str, Any]:
        if resp.status_code == 204:
            return {}
        try:
            return resp.json()
        except ValueError:
            logger.error("Non-JSON response from %s", url)
            raise
