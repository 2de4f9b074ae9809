"""
Jubelio Shipment API client.

Auth is resolved per request, in this order: a static API token, a bearer
token issued from the client credentials (cached process-wide), HTTP Basic
with username/password, nothing.
"""
from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple
from urllib.parse import quote

import requests

from core.config import JubelioSettings, jubelio_settings
from core.http import DEFAULT_TIMEOUT, decode_body, error_message

logger = logging.getLogger(__name__)

TOKEN_PATH = "/auth/generate-token"


class ProviderError(Exception):
    pass


class ProviderHTTPError(ProviderError):
    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(error_message(body, f"Jubelio responded with HTTP {status_code}"))


class TokenCache:
    """
    Single bearer token shared by every client in the process.

    The entry is replaced as one tuple so readers outside the lock never see
    a token paired with another token's expiry. Refresh happens under the
    lock with a second freshness check, so callers racing on an expired
    token trigger one issuance between them.
    """

    MIN_TTL_SECONDS = 30
    REFRESH_MARGIN_SECONDS = 10

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[Tuple[Hashable, str, float]] = None

    def _fresh(self, key: Hashable) -> Optional[str]:
        entry = self._entry
        if entry is None:
            return None
        entry_key, token, expires_at = entry
        if entry_key != key or expires_at <= self._clock() + self.REFRESH_MARGIN_SECONDS:
            return None
        return token

    def get(self, key: Hashable, fetch: Callable[[], Tuple[str, float]]) -> str:
        token = self._fresh(key)
        if token:
            return token
        with self._lock:
            token = self._fresh(key)
            if token:
                return token
            token, expires_in = fetch()
            self._entry = (key, token, self._clock() + max(self.MIN_TTL_SECONDS, expires_in))
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None


_token_cache = TokenCache()


def get_token_cache() -> TokenCache:
    return _token_cache


class JubelioClient:
    def __init__(
        self,
        config: Optional[JubelioSettings] = None,
        session: Optional[requests.Session] = None,
        token_cache: Optional[TokenCache] = None,
    ) -> None:
        self.config = config or jubelio_settings()
        if not self.config.api_base_url:
            raise ProviderError("Jubelio is not configured (JUBELIO_API_BASE_URL missing)")
        self.base_url = self.config.api_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.token_cache = token_cache or get_token_cache()

    # -----------------------------
    # Transport
    # -----------------------------
    def invoke(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        headers = {"Content-Type": "application/json"}
        headers.update(self._auth_headers(path))
        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=body,
            headers=headers,
            timeout=DEFAULT_TIMEOUT,
        )
        return response.status_code, decode_body(response)

    def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        status_code, data = self.invoke(method, path, body)
        if status_code >= 400:
            logger.warning("Jubelio %s %s failed status=%s", method, path, status_code)
            raise ProviderHTTPError(status_code, data)
        return data

    # -----------------------------
    # Auth
    # -----------------------------
    def _auth_headers(self, path: str) -> Dict[str, str]:
        if path.startswith(TOKEN_PATH):
            return {}
        token = self._bearer_token()
        if token:
            return {"Authorization": f"Bearer {token}"}
        if self.config.username and self.config.password:
            raw = f"{self.config.username}:{self.config.password}".encode("utf-8")
            return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
        return {}

    def _bearer_token(self) -> Optional[str]:
        if self.config.api_token:
            return self.config.api_token
        if self.config.client_id and self.config.client_secret:
            return self.token_cache.get((self.base_url, self.config.client_id), self._issue_token)
        return None

    def _issue_token(self) -> Tuple[str, float]:
        data = self.request(
            "POST",
            TOKEN_PATH,
            {"client_id": self.config.client_id, "client_secret": self.config.client_secret},
        )
        data = data if isinstance(data, dict) else {}
        token = str(data.get("token") or "")
        if not token:
            raise ProviderError("Failed to obtain Jubelio token")
        try:
            expires_in = float(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0
        logger.info("Issued Jubelio token expires_in=%s", expires_in)
        return token, expires_in

    # -----------------------------
    # Endpoints
    # -----------------------------
    def rates(self, body: Dict[str, Any]) -> Any:
        return self.request("POST", "/rates", body)

    def create_shipment(self, body: Dict[str, Any]) -> Any:
        return self.request("POST", "/shipments/create", body)

    def provinces(self) -> List[Any]:
        return self._region("/region/provinces")

    def cities(self, province_id: str) -> List[Any]:
        return self._region(f"/region/cities/{quote(str(province_id), safe='')}")

    def districts(self, city_id: str) -> List[Any]:
        return self._region(f"/region/districts/{quote(str(city_id), safe='')}")

    def areas(self, district_id: str) -> List[Any]:
        return self._region(f"/region/areas/{quote(str(district_id), safe='')}")

    def _region(self, path: str) -> List[Any]:
        data = self.request("GET", path)
        return data if isinstance(data, list) else []
