from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from .badges import Badge, get_earned_badges, get_next_badge, get_progress_to_next
from .db import execute_named, fetch_named, fetchrow_named, get_db
from .deps import get_current_user
from .errors import StreakError
from .events import write_event_best_effort
from .ledger import fetch_owned_habit
from .schemas import (
    BadgeInfo,
    HabitCreateRequest,
    HabitListResponse,
    HabitResponse,
    HabitUpdateRequest,
)


router = APIRouter(prefix="/v1/habits", tags=["Habits"])

_HABIT_COLUMNS = """
    id, user_id, title, emoji, color, target_days,
    current_streak, longest_streak, last_check_in,
    stake_amount, stake_status,
    auto_checkin_source, auto_checkin_min_steps, auto_checkin_min_minutes
"""

# Request field -> column, for PATCH.
_UPDATABLE_FIELDS = {
    "title": "title",
    "emoji": "emoji",
    "color": "color",
    "targetDays": "target_days",
    "autoCheckinSource": "auto_checkin_source",
    "autoCheckinMinSteps": "auto_checkin_min_steps",
    "autoCheckinMinMinutes": "auto_checkin_min_minutes",
}


def badge_info(badge: Badge) -> BadgeInfo:
    return BadgeInfo(
        id=badge.id,
        name=badge.name,
        emoji=badge.emoji,
        description=badge.description,
        requiredDays=badge.required_days,
        color=badge.color,
    )


def format_habit_response(habit: dict[str, Any]) -> HabitResponse:
    longest_streak = int(habit.get("longest_streak") or 0)
    next_badge = get_next_badge(longest_streak)
    last_check_in = habit.get("last_check_in")
    return HabitResponse(
        id=habit["id"],
        title=habit["title"],
        emoji=habit.get("emoji") or "🔥",
        color=habit.get("color") or "#f97316",
        targetDays=int(habit.get("target_days") or 0),
        currentStreak=int(habit.get("current_streak") or 0),
        longestStreak=longest_streak,
        lastCheckIn=last_check_in.isoformat() if last_check_in else None,
        stakeAmount=int(habit.get("stake_amount") or 0),
        stakeStatus=habit.get("stake_status") or "none",
        autoCheckinSource=habit.get("auto_checkin_source") or "none",
        autoCheckinMinSteps=int(habit.get("auto_checkin_min_steps") or 0),
        autoCheckinMinMinutes=int(habit.get("auto_checkin_min_minutes") or 0),
        badges=[badge_info(badge) for badge in get_earned_badges(longest_streak)],
        nextBadge=badge_info(next_badge) if next_badge else None,
        badgeProgress=get_progress_to_next(longest_streak),
    )


@router.get("", response_model=HabitListResponse)
async def list_habits(
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    rows = await fetch_named(
        conn,
        "habits.list",
        f"""
        SELECT {_HABIT_COLUMNS}
        FROM habits
        WHERE user_id = $1
        ORDER BY updated_at DESC
        """,
        str(user["id"]),
    )
    return HabitListResponse(items=[format_habit_response(dict(row)) for row in rows])


@router.post("", response_model=HabitResponse, status_code=201)
async def create_habit(
    payload: HabitCreateRequest,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    row = await fetchrow_named(
        conn,
        "habits.create",
        f"""
        INSERT INTO habits (
            user_id, title, emoji, color, target_days,
            auto_checkin_source, auto_checkin_min_steps, auto_checkin_min_minutes
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
        RETURNING {_HABIT_COLUMNS}
        """,
        str(user["id"]),
        payload.title.strip(),
        payload.emoji,
        payload.color,
        payload.targetDays,
        payload.autoCheckinSource,
        payload.autoCheckinMinSteps,
        payload.autoCheckinMinMinutes,
    )
    habit = dict(row)
    await write_event_best_effort(
        conn,
        event_type="habit_created",
        user_id=str(user["id"]),
        payload={"habitId": str(habit["id"]), "title": habit["title"]},
    )
    return format_habit_response(habit)


@router.get("/{habit_id}", response_model=HabitResponse)
async def get_habit(
    habit_id: UUID,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    habit = await fetch_owned_habit(conn, str(habit_id), str(user["id"]))
    return format_habit_response(habit)


@router.patch("/{habit_id}", response_model=HabitResponse)
async def update_habit(
    habit_id: UUID,
    payload: HabitUpdateRequest,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    await fetch_owned_habit(conn, str(habit_id), str(user["id"]))

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "title" in changes:
        changes["title"] = changes["title"].strip()
    if not changes:
        raise StreakError(
            code="VALIDATION_FAILED",
            message="Invalid request data",
            status_code=400,
            details={"fieldErrors": [{"field": "body", "issue": "no fields to update"}]},
        )

    args: list[Any] = []
    assignments: list[str] = []
    for field_name, value in changes.items():
        args.append(value)
        assignments.append(f"{_UPDATABLE_FIELDS[field_name]} = ${len(args)}")
    args.append(str(habit_id))

    row = await fetchrow_named(
        conn,
        "habits.update",
        f"""
        UPDATE habits
        SET {", ".join(assignments)},
            updated_at = NOW()
        WHERE id = ${len(args)}
        RETURNING {_HABIT_COLUMNS}
        """,
        *args,
    )
    return format_habit_response(dict(row))


@router.delete("/{habit_id}", status_code=204)
async def delete_habit(
    habit_id: UUID,
    user=Depends(get_current_user),
    conn=Depends(get_db),
):
    await fetch_owned_habit(conn, str(habit_id), str(user["id"]))
    await execute_named(
        conn,
        "habits.delete",
        "DELETE FROM habits WHERE id = $1 AND user_id = $2",
        str(habit_id),
        str(user["id"]),
    )
    await write_event_best_effort(
        conn,
        event_type="habit_deleted",
        user_id=str(user["id"]),
        payload={"habitId": str(habit_id)},
    )
    return Response(status_code=204)
