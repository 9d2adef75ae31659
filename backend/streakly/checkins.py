import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from .badges import Badge, get_newly_earned_badges
from .db import fetch_named, get_db
from .deps import get_current_user
from .events import write_event_best_effort
from .habits import badge_info
from .ledger import CheckInOutcome, UndoOutcome, fetch_owned_habit, record_check_in, undo_check_in
from .observability import log_habit_action
from .rewards import grant_check_in_reward, revoke_check_in_reward
from .schemas import (
    CheckInItem,
    CheckInListResponse,
    CheckInRequest,
    CheckInResponse,
    UndoCheckInResponse,
)
from .stakes import forfeit_stake_best_effort
from .streak_logic import utc_today


logger = logging.getLogger("streakly-checkins")
router = APIRouter(prefix="/v1/habits", tags=["Check-ins"])


@dataclass
class CheckInSummary:
    outcome: CheckInOutcome
    coins_awarded: int = 0
    stake_forfeited: bool = False
    new_badges: list[Badge] = field(default_factory=list)


async def check_in_with_rewards(
    conn: Any,
    *,
    habit_id: str,
    user_id: str,
    day: Optional[date] = None,
    tier: str = "full",
    mood: Optional[str] = None,
    note: Optional[str] = None,
) -> CheckInSummary:
    async with conn.transaction():
        outcome = await record_check_in(
            conn,
            habit_id=habit_id,
            user_id=user_id,
            day=day,
            tier=tier,
            mood=mood,
            note=note,
        )
        coins_awarded = await grant_check_in_reward(conn, user_id=user_id, tier=tier)

    # Forfeit runs after commit; a failure here never undoes the check-in.
    stake_forfeited = False
    if outcome.streak_broken:
        stake_forfeited = await forfeit_stake_best_effort(conn, habit_id=habit_id, user_id=user_id)

    new_badges = get_newly_earned_badges(outcome.previous_longest_streak, outcome.longest_streak)
    await write_event_best_effort(
        conn,
        event_type="check_in",
        user_id=user_id,
        payload={
            "habitId": habit_id,
            "date": outcome.day.isoformat(),
            "tier": tier,
            "currentStreak": outcome.current_streak,
            "freezeTokensUsed": outcome.freeze_tokens_used,
            "streakBroken": outcome.streak_broken,
            "coinsAwarded": coins_awarded,
            "newBadges": [badge.id for badge in new_badges],
        },
    )
    return CheckInSummary(
        outcome=outcome,
        coins_awarded=coins_awarded,
        stake_forfeited=stake_forfeited,
        new_badges=new_badges,
    )


async def undo_with_rewards(
    conn: Any,
    *,
    habit_id: str,
    user_id: str,
    day: Optional[date] = None,
) -> tuple[UndoOutcome, int]:
    async with conn.transaction():
        outcome = await undo_check_in(conn, habit_id=habit_id, user_id=user_id, day=day)
        coins_revoked = await revoke_check_in_reward(conn, user_id=user_id, tier=outcome.removed_tier)

    await write_event_best_effort(
        conn,
        event_type="check_in_undone",
        user_id=user_id,
        payload={
            "habitId": habit_id,
            "date": outcome.day.isoformat(),
            "currentStreak": outcome.current_streak,
            "coinsRevoked": coins_revoked,
        },
    )
    return outcome, coins_revoked


@router.post("/{habit_id}/check-in", response_model=CheckInResponse)
async def check_in(
    habit_id: UUID,
    request: Request,
    payload: Optional[CheckInRequest] = None,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    request_data = payload or CheckInRequest()
    summary = await check_in_with_rewards(
        conn,
        habit_id=str(habit_id),
        user_id=str(user["id"]),
        tier=request_data.tier,
        mood=request_data.mood,
        note=request_data.note,
    )
    outcome = summary.outcome
    log_habit_action(
        logger,
        "CHECK_IN_DONE",
        request,
        user_id=user["id"],
        habit_id=habit_id,
        date=outcome.day.isoformat(),
        tier=outcome.tier,
        current_streak=outcome.current_streak,
        freeze_tokens_used=outcome.freeze_tokens_used,
        streak_broken=outcome.streak_broken,
        coins_awarded=summary.coins_awarded,
    )
    return CheckInResponse(
        habitId=habit_id,
        date=outcome.day.isoformat(),
        tier=outcome.tier,
        currentStreak=outcome.current_streak,
        longestStreak=outcome.longest_streak,
        freezeTokensUsed=outcome.freeze_tokens_used,
        frozenDates=[frozen_day.isoformat() for frozen_day in outcome.frozen_days],
        streakBroken=outcome.streak_broken,
        stakeForfeited=summary.stake_forfeited,
        coinsAwarded=summary.coins_awarded,
        newBadges=[badge_info(badge) for badge in summary.new_badges],
    )


@router.delete("/{habit_id}/check-in", response_model=UndoCheckInResponse)
async def undo_today_check_in(
    habit_id: UUID,
    request: Request,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    outcome, coins_revoked = await undo_with_rewards(
        conn,
        habit_id=str(habit_id),
        user_id=str(user["id"]),
    )
    log_habit_action(
        logger,
        "CHECK_IN_UNDO_DONE",
        request,
        user_id=user["id"],
        habit_id=habit_id,
        date=outcome.day.isoformat(),
        current_streak=outcome.current_streak,
        coins_revoked=coins_revoked,
    )
    return UndoCheckInResponse(
        habitId=habit_id,
        date=outcome.day.isoformat(),
        currentStreak=outcome.current_streak,
        longestStreak=outcome.longest_streak,
        lastCheckIn=outcome.last_check_in.isoformat() if outcome.last_check_in else None,
        coinsRevoked=coins_revoked,
    )


@router.get("/{habit_id}/check-ins", response_model=CheckInListResponse)
async def list_check_ins(
    habit_id: UUID,
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    await fetch_owned_habit(conn, str(habit_id), str(user["id"]))

    today = utc_today()
    month_start = date(year or today.year, month or today.month, 1)
    if month_start.month == 12:
        month_end = date(month_start.year + 1, 1, 1)
    else:
        month_end = date(month_start.year, month_start.month + 1, 1)

    rows = await fetch_named(
        conn,
        "checkins.month",
        """
        SELECT check_in_date, status, tier, mood, note
        FROM check_ins
        WHERE habit_id = $1
          AND check_in_date >= $2
          AND check_in_date < $3
        ORDER BY check_in_date ASC
        """,
        str(habit_id),
        month_start,
        month_end,
    )

    items = []
    for row in rows:
        row_dict = dict(row)
        items.append(
            CheckInItem(
                date=row_dict["check_in_date"].isoformat(),
                status=row_dict["status"],
                tier=row_dict["tier"],
                mood=row_dict.get("mood"),
                note=row_dict.get("note"),
            )
        )
    return CheckInListResponse(items=items)
