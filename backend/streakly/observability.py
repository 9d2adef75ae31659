import json
import logging
import time
from contextvars import ContextVar
from typing import Any, Optional
from uuid import uuid4

from fastapi import Request


REQUEST_ID_HEADER = "X-Request-Id"
REQUEST_ID_MAX_LEN = 128

_REQUEST_ID_CTX: ContextVar[str] = ContextVar("streakly_request_id", default="")
_REQUEST_PATH_CTX: ContextVar[str] = ContextVar("streakly_request_path", default="")


def generate_request_id() -> str:
    return str(uuid4())


def validate_request_id(value: str) -> bool:
    candidate = value.strip()
    return bool(candidate) and len(candidate) <= REQUEST_ID_MAX_LEN and candidate.isprintable()


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return request_id if isinstance(request_id, str) else ""


def set_request_context(request_id: str, path: str) -> tuple[object, object]:
    return _REQUEST_ID_CTX.set(request_id), _REQUEST_PATH_CTX.set(path)


def reset_request_context(tokens: tuple[object, object]) -> None:
    request_id_token, request_path_token = tokens
    _REQUEST_ID_CTX.reset(request_id_token)
    _REQUEST_PATH_CTX.reset(request_path_token)


def current_request_context() -> dict[str, str]:
    """Request id and path for code that has no Request at hand (db helpers)."""
    return {
        "request_id": _REQUEST_ID_CTX.get(),
        "path": _REQUEST_PATH_CTX.get(),
    }


def log_ctx(
    request: Request,
    *,
    user_id: Optional[Any] = None,
    habit_id: Optional[Any] = None,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    context: dict[str, Any] = {
        "request_id": get_request_id(request),
        "method": request.method,
        "path": request.url.path,
    }
    for key, value in (("user_id", user_id), ("habit_id", habit_id)):
        if value is not None:
            context[key] = str(value)
    context.update({key: value for key, value in (extra or {}).items() if value is not None})
    return context


def log_ctx_json(context: dict[str, Any]) -> str:
    return json.dumps(context, separators=(",", ":"), ensure_ascii=False, default=str)


def log_habit_action(
    logger: logging.Logger,
    action: str,
    request: Request,
    *,
    user_id: Any,
    habit_id: Any,
    **fields: Any,
) -> None:
    """Log one streak mutation as ``<ACTION> context={...}`` keyed by user and habit."""
    context = log_ctx(request, user_id=user_id, habit_id=habit_id, extra=fields)
    logger.info("%s context=%s", action, log_ctx_json(context))


def duration_ms(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)
