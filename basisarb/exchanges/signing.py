"""HMAC-SHA256 request signing for Binance signed endpoints."""

import hashlib
import hmac
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from .base import MissingCredentialsError


def _wire_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RequestSigner:
    """Builds signed query strings and auth headers."""

    def __init__(self, api_key: str, api_secret: str, recv_window_ms: int = 5000,
                 clock: Callable[[], int] = lambda: int(time.time() * 1000)):
        self.api_key = api_key
        self.api_secret = api_secret
        self.recv_window_ms = recv_window_ms
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def sign(self, payload: str) -> str:
        return hmac.new(self.api_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    def build_query(self, params: Optional[Dict[str, Any]] = None) -> str:
        """Canonical query with recvWindow, timestamp and trailing signature.

        None values are dropped and insertion order is kept.
        """
        if not self.enabled:
            raise MissingCredentialsError("API key and secret are required for signed requests")

        query = {k: _wire_value(v) for k, v in (params or {}).items() if v is not None}
        query.setdefault("recvWindow", str(self.recv_window_ms))
        query["timestamp"] = str(self._clock())
        encoded = urlencode(query)
        return f"{encoded}&signature={self.sign(encoded)}"

    def headers(self) -> Dict[str, str]:
        return {"X-MBX-APIKEY": self.api_key}
