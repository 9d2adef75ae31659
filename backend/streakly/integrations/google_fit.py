import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Optional

import httpx

from ..config import settings
from .fitbit import TRANSIENT_STATUSES, ActivitySummary, _as_int


logger = logging.getLogger("streakly-google-fit")

STEP_COUNT_DATA_TYPE = "com.google.step_count.delta"
ACTIVE_MINUTES_DATA_TYPE = "com.google.active_minutes"
DAY_MILLIS = 24 * 60 * 60 * 1000


class GoogleFitApiError(Exception):
    pass


def day_window_millis(day: date) -> tuple[int, int]:
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    start_ms = int(start.timestamp() * 1000)
    return start_ms, start_ms + DAY_MILLIS


def build_aggregate_request(day: date) -> dict:
    start_ms, end_ms = day_window_millis(day)
    return {
        "aggregateBy": [
            {"dataTypeName": STEP_COUNT_DATA_TYPE},
            {"dataTypeName": ACTIVE_MINUTES_DATA_TYPE},
        ],
        "bucketByTime": {"durationMillis": DAY_MILLIS},
        "startTimeMillis": start_ms,
        "endTimeMillis": end_ms,
    }


def _point_value(point) -> int:
    values = point.get("value") if isinstance(point, dict) else None
    if not isinstance(values, list) or not values or not isinstance(values[0], dict):
        return 0
    first = values[0]
    if "intVal" in first:
        return _as_int(first.get("intVal"))
    return _as_int(first.get("fpVal"))


def parse_aggregate_response(body: dict) -> ActivitySummary:
    """Sum the step and active-minute points across every bucket of an aggregate response.

    Datasets are told apart by their ``dataSourceId``; anything else in the
    response is ignored.
    """
    buckets = body.get("bucket") if isinstance(body, dict) else None
    if not isinstance(buckets, list):
        raise GoogleFitApiError("google_fit_bad_response")

    steps = 0
    active_minutes = 0
    for bucket in buckets:
        for dataset in (bucket or {}).get("dataset") or []:
            source_id = str((dataset or {}).get("dataSourceId") or "")
            points = (dataset or {}).get("point") or []
            if "step_count" in source_id:
                steps += sum(_point_value(point) for point in points)
            elif "active_minutes" in source_id:
                active_minutes += sum(_point_value(point) for point in points)

    return ActivitySummary(steps=steps, active_minutes=active_minutes)


class GoogleFitClient:
    def __init__(self) -> None:
        connect_timeout, read_timeout = settings.google_fit_timeouts()
        self.base_url = settings.GOOGLE_FIT_API_BASE_URL.rstrip("/")
        self.timeout = httpx.Timeout(connect=connect_timeout, read=read_timeout, write=10.0, pool=5.0)

    async def get_daily_activity(self, access_token: str, day: date) -> ActivitySummary:
        if not access_token:
            raise GoogleFitApiError("missing_access_token")

        url = f"{self.base_url}/users/me/dataset:aggregate"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        body = build_aggregate_request(day)

        max_attempts = 1 + max(0, int(settings.GOOGLE_FIT_MAX_RETRIES))
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, headers=headers, json=body)

                if response.status_code in TRANSIENT_STATUSES and attempt < max_attempts - 1:
                    await asyncio.sleep(0.3)
                    continue

                if response.status_code >= 400:
                    raise GoogleFitApiError(f"google_fit_status_{response.status_code}")

                return parse_aggregate_response(response.json())
            except (GoogleFitApiError, ValueError) as exc:
                last_error = exc
                break
            except httpx.HTTPError as exc:
                last_error = exc
                if attempt < max_attempts - 1:
                    await asyncio.sleep(0.3)
                    continue

        logger.warning("GOOGLE_FIT_ACTIVITY_FAIL day=%s reason=%s", day.isoformat(), type(last_error).__name__)
        raise GoogleFitApiError("google_fit_activity_failed") from last_error


google_fit_client = GoogleFitClient()
