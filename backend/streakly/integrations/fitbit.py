import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

import httpx

from ..config import settings


TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}

# Request headers carry the user's bearer token.
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("streakly-fitbit")


class FitbitApiError(Exception):
    pass


@dataclass(frozen=True)
class ActivitySummary:
    steps: int
    active_minutes: int


def _as_int(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def parse_activity_summary(body: dict) -> ActivitySummary:
    summary = body.get("summary") if isinstance(body, dict) else None
    if not isinstance(summary, dict):
        raise FitbitApiError("fitbit_bad_response")

    # Fitbit splits active minutes into lightly, fairly and very active.
    active_minutes = (
        _as_int(summary.get("lightlyActiveMinutes"))
        + _as_int(summary.get("fairlyActiveMinutes"))
        + _as_int(summary.get("veryActiveMinutes"))
    )
    return ActivitySummary(steps=_as_int(summary.get("steps")), active_minutes=active_minutes)


class FitbitClient:
    def __init__(self) -> None:
        connect_timeout, read_timeout = settings.fitbit_timeouts()
        self.base_url = settings.FITBIT_API_BASE_URL.rstrip("/")
        self.timeout = httpx.Timeout(connect=connect_timeout, read=read_timeout, write=10.0, pool=5.0)

    async def get_daily_activity(self, access_token: str, day: date) -> ActivitySummary:
        if not access_token:
            raise FitbitApiError("missing_access_token")

        url = f"{self.base_url}/1/user/-/activities/date/{day.isoformat()}.json"
        headers = {"Authorization": f"Bearer {access_token}"}

        max_attempts = 1 + max(0, int(settings.FITBIT_MAX_RETRIES))
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=headers)

                if response.status_code in TRANSIENT_STATUSES and attempt < max_attempts - 1:
                    await asyncio.sleep(0.3)
                    continue

                if response.status_code >= 400:
                    raise FitbitApiError(f"fitbit_status_{response.status_code}")

                return parse_activity_summary(response.json())
            except (FitbitApiError, ValueError) as exc:
                last_error = exc
                break
            except httpx.HTTPError as exc:
                last_error = exc
                if attempt < max_attempts - 1:
                    await asyncio.sleep(0.3)
                    continue

        logger.warning("FITBIT_ACTIVITY_FAIL day=%s reason=%s", day.isoformat(), type(last_error).__name__)
        raise FitbitApiError("fitbit_activity_failed") from last_error


fitbit_client = FitbitClient()
