"""Helpers shared by the outbound provider clients."""
import json
from typing import Any

import requests

DEFAULT_TIMEOUT = 10


def decode_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def error_message(body: Any, fallback: str) -> str:
    """Flatten a provider error body into one human-readable line."""
    if isinstance(body, str):
        return body.strip() or fallback
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    if body is None:
        return fallback
    try:
        return json.dumps(body)
    except (TypeError, ValueError):
        return fallback
