import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from .config import settings
from .db import execute_named, fetchrow_named, get_db
from .deps import get_current_user
from .errors import StreakError
from .events import write_event_best_effort
from .ledger import fetch_owned_habit
from .observability import log_habit_action
from .schemas import StakeClaimResponse, StakeRequest, StakeResponse


logger = logging.getLogger("streakly-stakes")
router = APIRouter(prefix="/v1/habits", tags=["Stakes"])


def _stake_error(code: str, message: str, status_code: int = 409, details: Optional[dict] = None) -> StreakError:
    return StreakError(code=code, message=message, status_code=status_code, details=details)


@router.post("/{habit_id}/stake", response_model=StakeResponse)
async def place_stake(
    habit_id: UUID,
    payload: StakeRequest,
    request: Request,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    user_id = str(user["id"])
    amount = int(payload.amount)

    async with conn.transaction():
        habit = await fetch_owned_habit(conn, str(habit_id), user_id, lock=True)
        if habit["stake_status"] == "active":
            raise _stake_error("STAKE_ALREADY_ACTIVE", "This habit already has an active stake")
        if not habit.get("target_days"):
            raise _stake_error("STAKE_TARGET_REQUIRED", "Set a target goal before staking", status_code=400)

        user_row = await fetchrow_named(
            conn,
            "stakes.debit_coins",
            """
            UPDATE users
            SET coins = coins - $1,
                updated_at = NOW()
            WHERE id = $2
              AND coins >= $1
            RETURNING coins
            """,
            amount,
            user_id,
        )
        if user_row is None:
            raise _stake_error("INSUFFICIENT_COINS", "Not enough coins for this stake", details={"amount": amount})

        await execute_named(
            conn,
            "stakes.activate",
            """
            UPDATE habits
            SET stake_amount = $1,
                stake_status = 'active',
                updated_at = NOW()
            WHERE id = $2
            """,
            amount,
            str(habit_id),
        )

    log_habit_action(
        logger,
        "STAKE_PLACED",
        request,
        user_id=user_id,
        habit_id=habit_id,
        amount=amount,
        coins=int(user_row["coins"]),
    )
    await write_event_best_effort(
        conn,
        event_type="stake_placed",
        user_id=user_id,
        payload={"habitId": str(habit_id), "amount": amount},
    )
    return StakeResponse(
        habitId=habit_id,
        stakeAmount=amount,
        stakeStatus="active",
        coins=int(user_row["coins"]),
    )


@router.post("/{habit_id}/stake/claim", response_model=StakeClaimResponse)
async def claim_stake(
    habit_id: UUID,
    request: Request,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    user_id = str(user["id"])

    async with conn.transaction():
        habit = await fetch_owned_habit(conn, str(habit_id), user_id, lock=True)
        if habit["stake_status"] != "active":
            raise _stake_error("STAKE_NOT_ACTIVE", "No active stake to claim")

        target_days = int(habit.get("target_days") or 0)
        current_streak = int(habit.get("current_streak") or 0)
        if not target_days or current_streak < target_days:
            raise _stake_error(
                "STAKE_TARGET_NOT_REACHED",
                f"Not there yet! Need {target_days} days, at {current_streak} now.",
                details={"targetDays": target_days, "currentStreak": current_streak},
            )

        payout = settings.stake_payout(int(habit["stake_amount"]))
        user_row = await fetchrow_named(
            conn,
            "stakes.credit_payout",
            """
            UPDATE users
            SET coins = coins + $1,
                updated_at = NOW()
            WHERE id = $2
            RETURNING coins
            """,
            payout,
            user_id,
        )
        await execute_named(
            conn,
            "stakes.mark_won",
            """
            UPDATE habits
            SET stake_status = 'won',
                stake_amount = 0,
                updated_at = NOW()
            WHERE id = $1
            """,
            str(habit_id),
        )

    coins = int(user_row["coins"]) if user_row else 0
    log_habit_action(
        logger,
        "STAKE_CLAIMED",
        request,
        user_id=user_id,
        habit_id=habit_id,
        payout=payout,
        coins=coins,
    )
    await write_event_best_effort(
        conn,
        event_type="stake_won",
        user_id=user_id,
        payload={"habitId": str(habit_id), "payout": payout},
    )
    return StakeClaimResponse(habitId=habit_id, payout=payout, coins=coins)


async def forfeit_stake_best_effort(conn: Any, *, habit_id: str, user_id: str) -> bool:
    """Mark an active stake as lost. Coins were taken when the stake was placed."""
    try:
        row = await fetchrow_named(
            conn,
            "stakes.forfeit",
            """
            UPDATE habits
            SET stake_status = 'lost',
                stake_amount = 0,
                updated_at = NOW()
            WHERE id = $1
              AND user_id = $2
              AND stake_status = 'active'
            RETURNING stake_status
            """,
            habit_id,
            user_id,
        )
    except Exception as exc:
        logger.warning("STAKE_FORFEIT_FAIL habit_id=%s user_id=%s reason=%s", habit_id, user_id, type(exc).__name__)
        return False

    if row is None:
        return False

    logger.info("STAKE_FORFEITED habit_id=%s user_id=%s", habit_id, user_id)
    await write_event_best_effort(
        conn,
        event_type="stake_lost",
        user_id=user_id,
        payload={"habitId": habit_id},
    )
    return True
