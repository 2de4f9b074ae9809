"""Typed views over the provider settings in ``core.settings``.

Settings are read at call time so ``override_settings`` in tests is honoured.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


class ExecutionMode(str, Enum):
    LIVE = "live"
    MOCK = "mock"

    @classmethod
    def parse(cls, value: Any) -> "ExecutionMode":
        raw = str(value or cls.LIVE.value).strip().lower()
        try:
            return cls(raw)
        except ValueError as exc:
            raise ImproperlyConfigured(f"Unknown JUBELIO_MODE '{value}', expected 'live' or 'mock'") from exc


@dataclass(frozen=True)
class OriginAddress:
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    zipcode: str = ""
    area_id: str = ""


@dataclass(frozen=True)
class JubelioSettings:
    api_base_url: str = ""
    mode: ExecutionMode = ExecutionMode.LIVE
    api_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    wallet_id: str = ""
    webhook_token: str = ""
    default_service_category_id: int = 1
    origin: OriginAddress = OriginAddress()

    @property
    def is_mock(self) -> bool:
        return self.mode is ExecutionMode.MOCK

    @property
    def is_configured(self) -> bool:
        return self.is_mock or bool(self.api_base_url)


@dataclass(frozen=True)
class XenditSettings:
    api_base_url: str = "https://api.xendit.co"
    secret_key: str = ""
    webhook_token: str = ""


def _section(name: str) -> Dict[str, Any]:
    return dict(getattr(settings, name, None) or {})


def jubelio_settings() -> JubelioSettings:
    raw = _section("JUBELIO")
    origin = raw.get("ORIGIN") or {}
    return JubelioSettings(
        api_base_url=str(raw.get("API_BASE_URL") or "").strip(),
        mode=ExecutionMode.parse(raw.get("MODE")),
        api_token=raw.get("API_TOKEN") or "",
        client_id=raw.get("CLIENT_ID") or "",
        client_secret=raw.get("CLIENT_SECRET") or "",
        username=raw.get("USERNAME") or "",
        password=raw.get("PASSWORD") or "",
        wallet_id=raw.get("WALLET_ID") or "",
        webhook_token=raw.get("WEBHOOK_TOKEN") or "",
        default_service_category_id=int(raw.get("DEFAULT_SERVICE_CATEGORY_ID") or 1),
        origin=OriginAddress(
            name=origin.get("NAME") or "",
            email=origin.get("EMAIL") or "",
            phone=origin.get("PHONE") or "",
            address=origin.get("ADDRESS") or "",
            zipcode=origin.get("ZIPCODE") or "",
            area_id=str(origin.get("AREA_ID") or ""),
        ),
    )


def xendit_settings() -> XenditSettings:
    raw = _section("XENDIT")
    return XenditSettings(
        api_base_url=(raw.get("API_BASE_URL") or "https://api.xendit.co").rstrip("/"),
        secret_key=raw.get("SECRET_KEY") or "",
        webhook_token=raw.get("WEBHOOK_TOKEN") or "",
    )
