from typing import Dict, Iterable, Mapping, Optional

from django.utils.crypto import constant_time_compare

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "x-callback-token",
    "x-webhook-token",
}


def token_matches(expected: str, candidates: Iterable[Optional[str]]) -> bool:
    if not expected:
        return False
    return any(candidate and constant_time_compare(candidate, expected) for candidate in candidates)


def header_snapshot(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy request headers for the audit trail, masking shared secrets."""
    snapshot = {}
    for name, value in headers.items():
        snapshot[name] = "***" if name.lower() in SENSITIVE_HEADERS else value
    return snapshot
