import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Mapping, Optional

from .checkins import check_in_with_rewards
from .db import fetch_named
from .errors import AlreadyCheckedIn, StreakError
from .integrations.fitbit import ActivitySummary
from .streak_logic import utc_today


logger = logging.getLogger("streakly-autocheckin")

AUTO_CHECKIN_SOURCE_FITBIT = "fitbit"
AUTO_CHECKIN_SOURCE_GOOGLE_FIT = "google_fit"

SOURCE_LABELS = {
    AUTO_CHECKIN_SOURCE_FITBIT: "Fitbit",
    AUTO_CHECKIN_SOURCE_GOOGLE_FIT: "Google Fit",
}

ActivityFetcher = Callable[[str, date], Awaitable[ActivitySummary]]


@dataclass
class AutoCheckInRunStats:
    total_scanned: int = 0
    checked_in: int = 0
    skipped: int = 0
    failed: int = 0


def meets_activity_thresholds(activity: ActivitySummary, *, min_steps: int, min_minutes: int) -> bool:
    # Either threshold is enough.
    return activity.steps >= min_steps or activity.active_minutes >= min_minutes


def _auto_check_in_note(source: str, activity: ActivitySummary) -> str:
    label = SOURCE_LABELS.get(source, source)
    return f"Auto via {label} ({activity.steps} steps, {activity.active_minutes} min active)"


async def run_auto_check_ins(
    conn: Any,
    *,
    fetchers: Mapping[str, ActivityFetcher],
    run_date: Optional[date] = None,
    job_run_id: Optional[str] = None,
) -> AutoCheckInRunStats:
    """Check in every auto habit whose wearable activity clears a threshold.

    ``fetchers`` maps an auto check-in source to the coroutine that reads one
    day of activity with that source's access token. Sources without a
    fetcher are not scanned. Activity is read once per user and source.
    """
    target_date = run_date or utc_today()
    run_id = job_run_id or str(uuid.uuid4())
    sources = sorted(source for source in fetchers if source in SOURCE_LABELS)

    rows = await fetch_named(
        conn,
        "autocheckin.candidates",
        """
        SELECT
            h.id AS habit_id,
            h.user_id,
            h.auto_checkin_source,
            h.auto_checkin_min_steps,
            h.auto_checkin_min_minutes,
            CASE h.auto_checkin_source
                WHEN 'fitbit' THEN u.fitbit_access_token
                WHEN 'google_fit' THEN u.google_fit_access_token
            END AS access_token
        FROM habits h
        JOIN users u
          ON u.id = h.user_id
        WHERE h.auto_checkin_source = ANY($1::text[])
          AND (
                (h.auto_checkin_source = 'fitbit' AND u.fitbit_access_token IS NOT NULL)
             OR (h.auto_checkin_source = 'google_fit' AND u.google_fit_access_token IS NOT NULL)
          )
        ORDER BY h.user_id, h.auto_checkin_source, h.id
        """,
        sources,
    )

    stats = AutoCheckInRunStats(total_scanned=len(rows))

    habits_by_account: dict[tuple[str, str], list[dict[str, Any]]] = {}
    for row in rows:
        record = dict(row)
        key = (str(record["user_id"]), str(record["auto_checkin_source"]))
        habits_by_account.setdefault(key, []).append(record)

    for (user_id, source), habits in habits_by_account.items():
        try:
            activity = await fetchers[source](str(habits[0]["access_token"]), target_date)
        except Exception as exc:
            stats.failed += len(habits)
            logger.warning(
                "AUTO_CHECKIN_ACTIVITY_FAIL job_run_id=%s user_id=%s source=%s reason=%s",
                run_id,
                user_id,
                source,
                type(exc).__name__,
            )
            continue

        for habit in habits:
            habit_id = str(habit["habit_id"])
            if not meets_activity_thresholds(
                activity,
                min_steps=int(habit["auto_checkin_min_steps"]),
                min_minutes=int(habit["auto_checkin_min_minutes"]),
            ):
                stats.skipped += 1
                continue

            try:
                await check_in_with_rewards(
                    conn,
                    habit_id=habit_id,
                    user_id=user_id,
                    day=target_date,
                    tier="full",
                    note=_auto_check_in_note(source, activity),
                )
                stats.checked_in += 1
            except AlreadyCheckedIn:
                stats.skipped += 1
            except StreakError as exc:
                stats.skipped += 1
                logger.info(
                    "AUTO_CHECKIN_SKIP job_run_id=%s user_id=%s habit_id=%s code=%s",
                    run_id,
                    user_id,
                    habit_id,
                    exc.code,
                )
            except Exception as exc:
                stats.failed += 1
                logger.warning(
                    "AUTO_CHECKIN_FAIL job_run_id=%s user_id=%s habit_id=%s reason=%s",
                    run_id,
                    user_id,
                    habit_id,
                    type(exc).__name__,
                )

    logger.info(
        "AUTO_CHECKIN_JOB_DONE job_run_id=%s date=%s total_scanned=%s checked_in=%s skipped=%s failed=%s",
        run_id,
        target_date.isoformat(),
        stats.total_scanned,
        stats.checked_in,
        stats.skipped,
        stats.failed,
    )
    return stats
