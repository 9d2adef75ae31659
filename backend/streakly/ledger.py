"""
Streak ledger: the only code that writes check-in records or the derived
streak fields of a habit.

Both operations run in one transaction. The habit row and the owner's row
are locked ``FOR UPDATE`` so the record insert/delete, the habit update and
the freeze-token deduction land together or not at all. Same-day duplicates
are rejected by the ``(habit_id, check_in_date)`` unique constraint.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

import asyncpg

from .db import execute_named, fetch_named, fetchrow_named
from .errors import AlreadyCheckedIn, CheckInOutOfOrder, HabitNotFound, NothingToUndo, NotAuthorized
from .streak_logic import (
    CHECK_IN_STATUS_FROZEN,
    CHECK_IN_STATUS_GENUINE,
    plan_check_in,
    recompute_current_streak,
    utc_today,
)


logger = logging.getLogger("streakly-ledger")


@dataclass(frozen=True)
class CheckInOutcome:
    habit_id: str
    day: date
    tier: str
    current_streak: int
    longest_streak: int
    previous_longest_streak: int
    freeze_tokens_used: int = 0
    frozen_days: list[date] = field(default_factory=list)
    streak_broken: bool = False


@dataclass(frozen=True)
class UndoOutcome:
    habit_id: str
    day: date
    removed_tier: str
    current_streak: int
    longest_streak: int
    last_check_in: Optional[date]


async def fetch_owned_habit(
    conn: Any,
    habit_id: str,
    user_id: str,
    *,
    lock: bool = False,
) -> dict[str, Any]:
    query = """
        SELECT id, user_id, title, emoji, color, target_days,
               current_streak, longest_streak, last_check_in,
               stake_amount, stake_status,
               auto_checkin_source, auto_checkin_min_steps, auto_checkin_min_minutes
        FROM habits
        WHERE id = $1
    """
    if lock:
        query += " FOR UPDATE"

    row = await fetchrow_named(conn, "habits.by_id", query, habit_id)
    if row is None:
        raise HabitNotFound(details={"habitId": str(habit_id)})

    habit = dict(row)
    if str(habit["user_id"]) != str(user_id):
        raise NotAuthorized(details={"habitId": str(habit_id)})
    return habit


async def record_check_in(
    conn: Any,
    *,
    habit_id: str,
    user_id: str,
    day: Optional[date] = None,
    tier: str = "full",
    mood: Optional[str] = None,
    note: Optional[str] = None,
) -> CheckInOutcome:
    check_in_day = day or utc_today()

    async with conn.transaction():
        habit = await fetch_owned_habit(conn, habit_id, user_id, lock=True)

        existing = await fetchrow_named(
            conn,
            "ledger.existing_check_in",
            "SELECT status FROM check_ins WHERE habit_id = $1 AND check_in_date = $2",
            habit_id,
            check_in_day,
        )
        if existing is not None:
            raise AlreadyCheckedIn(details={"habitId": str(habit_id), "date": check_in_day.isoformat()})

        last_check_in: Optional[date] = habit.get("last_check_in")
        if last_check_in is not None and check_in_day <= last_check_in:
            raise CheckInOutOfOrder(
                details={
                    "habitId": str(habit_id),
                    "date": check_in_day.isoformat(),
                    "lastCheckIn": last_check_in.isoformat(),
                }
            )

        user_row = await fetchrow_named(
            conn,
            "ledger.lock_user",
            "SELECT freeze_tokens FROM users WHERE id = $1 FOR UPDATE",
            user_id,
        )
        freeze_tokens = int(user_row["freeze_tokens"]) if user_row else 0

        previous_longest = int(habit.get("longest_streak") or 0)
        plan = plan_check_in(
            current_streak=int(habit.get("current_streak") or 0),
            longest_streak=previous_longest,
            last_check_in=last_check_in,
            day=check_in_day,
            freeze_tokens=freeze_tokens,
        )

        try:
            await execute_named(
                conn,
                "ledger.insert_check_in",
                """
                INSERT INTO check_ins (habit_id, user_id, check_in_date, status, tier, mood, note)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                habit_id,
                user_id,
                check_in_day,
                CHECK_IN_STATUS_GENUINE,
                tier,
                mood,
                note,
            )
        except asyncpg.UniqueViolationError as exc:
            raise AlreadyCheckedIn(details={"habitId": str(habit_id), "date": check_in_day.isoformat()}) from exc

        if plan.frozen_days:
            await execute_named(
                conn,
                "ledger.insert_frozen_days",
                """
                INSERT INTO check_ins (habit_id, user_id, check_in_date, status, tier)
                SELECT $1, $2, frozen_day, $4, 'full'
                FROM unnest($3::date[]) AS frozen_day
                """,
                habit_id,
                user_id,
                plan.frozen_days,
                CHECK_IN_STATUS_FROZEN,
            )

        await execute_named(
            conn,
            "ledger.update_habit_after_check_in",
            """
            UPDATE habits
            SET current_streak = $1,
                longest_streak = $2,
                last_check_in = $3,
                updated_at = NOW()
            WHERE id = $4
            """,
            plan.current_streak,
            plan.longest_streak,
            check_in_day,
            habit_id,
        )

        if plan.freeze_tokens_used:
            await execute_named(
                conn,
                "ledger.spend_freeze_tokens",
                """
                UPDATE users
                SET freeze_tokens = freeze_tokens - $1,
                    updated_at = NOW()
                WHERE id = $2
                """,
                plan.freeze_tokens_used,
                user_id,
            )

    if plan.streak_broken:
        logger.info(
            "STREAK_BROKEN habit_id=%s user_id=%s previous_streak=%s last_check_in=%s day=%s",
            habit_id,
            user_id,
            habit.get("current_streak"),
            last_check_in,
            check_in_day.isoformat(),
        )
    logger.info(
        "CHECK_IN_RECORDED habit_id=%s user_id=%s day=%s streak=%s longest=%s tokens_used=%s",
        habit_id,
        user_id,
        check_in_day.isoformat(),
        plan.current_streak,
        plan.longest_streak,
        plan.freeze_tokens_used,
    )

    return CheckInOutcome(
        habit_id=str(habit_id),
        day=check_in_day,
        tier=tier,
        current_streak=plan.current_streak,
        longest_streak=plan.longest_streak,
        previous_longest_streak=previous_longest,
        freeze_tokens_used=plan.freeze_tokens_used,
        frozen_days=list(plan.frozen_days),
        streak_broken=plan.streak_broken,
    )


async def undo_check_in(
    conn: Any,
    *,
    habit_id: str,
    user_id: str,
    day: Optional[date] = None,
) -> UndoOutcome:
    # Frozen records and the tokens spent on them are never refunded.
    undo_day = day or utc_today()

    async with conn.transaction():
        habit = await fetch_owned_habit(conn, habit_id, user_id, lock=True)

        deleted = await fetchrow_named(
            conn,
            "ledger.delete_check_in",
            """
            DELETE FROM check_ins
            WHERE habit_id = $1
              AND check_in_date = $2
              AND status = $3
            RETURNING tier
            """,
            habit_id,
            undo_day,
            CHECK_IN_STATUS_GENUINE,
        )
        if deleted is None:
            raise NothingToUndo(details={"habitId": str(habit_id), "date": undo_day.isoformat()})

        rows = await fetch_named(
            conn,
            "ledger.remaining_days",
            """
            SELECT check_in_date
            FROM check_ins
            WHERE habit_id = $1
            ORDER BY check_in_date DESC
            """,
            habit_id,
        )
        current_streak, last_check_in = recompute_current_streak(row["check_in_date"] for row in rows)

        await execute_named(
            conn,
            "ledger.update_habit_after_undo",
            """
            UPDATE habits
            SET current_streak = $1,
                longest_streak = GREATEST(longest_streak, $1),
                last_check_in = $2,
                updated_at = NOW()
            WHERE id = $3
            """,
            current_streak,
            last_check_in,
            habit_id,
        )

    logger.info(
        "CHECK_IN_UNDONE habit_id=%s user_id=%s day=%s streak=%s last_check_in=%s",
        habit_id,
        user_id,
        undo_day.isoformat(),
        current_streak,
        last_check_in,
    )

    return UndoOutcome(
        habit_id=str(habit_id),
        day=undo_day,
        removed_tier=str(deleted["tier"]),
        current_streak=current_streak,
        longest_streak=max(int(habit.get("longest_streak") or 0), current_streak),
        last_check_in=last_check_in,
    )
