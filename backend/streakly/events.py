import json
import logging
from typing import Any, Optional


logger = logging.getLogger("streakly-events")

_SENSITIVE_KEYS = {
    "authorization",
    "token",
    "access_token",
    "fitbit_access_token",
    "google_fit_access_token",
    "secret",
    "password",
}


def _sanitize_payload(value: Any) -> Any:
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for key, nested in value.items():
            key_str = str(key)
            if key_str.lower() in _SENSITIVE_KEYS:
                continue
            sanitized[key_str] = _sanitize_payload(nested)
        return sanitized
    if isinstance(value, list):
        return [_sanitize_payload(item) for item in value]
    return value


async def write_event_best_effort(
    conn: Any,
    event_type: str,
    user_id: Optional[str],
    payload: Optional[dict[str, Any]] = None,
) -> None:
    if not user_id:
        logger.warning("Skip event=%s due to empty user_id", event_type)
        return

    safe_payload = payload or {}
    safe_payload = _sanitize_payload(safe_payload)

    query = "INSERT INTO events (user_id, event_type, payload) VALUES ($1::uuid, $2, $3::jsonb)"
    params = (str(user_id), event_type, json.dumps(safe_payload, default=str))

    try:
        await conn.execute(query, *params)
    except Exception as exc:
        logger.warning("Failed to store event=%s reason=%s", event_type, type(exc).__name__)
