from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import requests

from core.config import XenditSettings, xendit_settings
from core.http import DEFAULT_TIMEOUT, decode_body, error_message


PRODUCTION_BASE_URL = "https://api.xendit.co"


class XenditError(Exception):
    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(error_message(body, f"Xendit responded with HTTP {status_code}"))


class XenditSDK:
    def __init__(
        self,
        secret_key: str,
        base_url: str = PRODUCTION_BASE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        # Secret key as the basic-auth username, empty password.
        self.session.auth = (secret_key, "")
        self.session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_settings(cls, config: Optional[XenditSettings] = None) -> "XenditSDK":
        config = config or xendit_settings()
        return cls(secret_key=config.secret_key, base_url=config.api_base_url)

    def invoke(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=body,
            timeout=DEFAULT_TIMEOUT,
        )
        return response.status_code, decode_body(response)

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        status_code, data = self.invoke(method, path, body)
        if status_code >= 400:
            raise XenditError(status_code, data)
        return data

    def create_invoice(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/v2/invoices", payload)

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v2/invoices/{quote(str(invoice_id), safe='')}")
