"""Ordered field-extraction rules for provider callback payloads.

Providers are loose about field names (``payment_method`` vs
``payment_method_type`` and so on). Each event type declares a tuple of
``Field`` rules; the first source key holding a non-empty value wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Field:
    name: str
    sources: Tuple[str, ...]
    default: Any = None
    transform: Optional[Callable[[Any], Any]] = None

    def pick(self, payload: Mapping[str, Any]) -> Any:
        for source in self.sources:
            value = payload.get(source)
            if _present(value):
                converted = self.transform(value) if self.transform else value
                return self.default if converted is None else converted
        return self.default


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def extract(payload: Any, fields: Iterable[Field]) -> Dict[str, Any]:
    data = payload if isinstance(payload, Mapping) else {}
    return {field.name: field.pick(data) for field in fields}


# -----------------------------
# Transforms
# -----------------------------
def as_text(value: Any) -> str:
    return str(value).strip()


def upper_text(value: Any) -> str:
    return as_text(value).upper()


def as_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def strip_prefix(prefix: str) -> Callable[[Any], str]:
    def _strip(value: Any) -> str:
        text = as_text(value)
        return text[len(prefix):] if text.startswith(prefix) else text

    return _strip
