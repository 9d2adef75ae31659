from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional


CHECK_IN_STATUS_GENUINE = "checked_in"
CHECK_IN_STATUS_FROZEN = "frozen"
CHECK_IN_TIERS = ("full", "half", "minimal")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _is_consecutive(prev_date: date, curr_date: date) -> bool:
    return (curr_date - prev_date).days == 1


def _as_date(raw_value) -> Optional[date]:
    if isinstance(raw_value, datetime):
        return raw_value.date()
    if isinstance(raw_value, date):
        return raw_value
    if isinstance(raw_value, str) and raw_value:
        return date.fromisoformat(raw_value)
    return None


@dataclass(frozen=True)
class CheckInPlan:
    current_streak: int
    longest_streak: int
    freeze_tokens_used: int = 0
    frozen_days: list[date] = field(default_factory=list)
    streak_broken: bool = False


def plan_check_in(
    *,
    current_streak: int,
    longest_streak: int,
    last_check_in: Optional[date],
    day: date,
    freeze_tokens: int,
) -> CheckInPlan:
    """
    Decide how a check-in on ``day`` affects the streak.

    Yesterday's check-in extends the streak. A first check-in starts at 1.
    A gap is bridged with freeze tokens when the user holds at least one token
    per missed day; otherwise the streak restarts at 1 and the plan is marked
    as broken.

    ``day`` must be strictly after ``last_check_in``.
    """
    if last_check_in is not None and day <= last_check_in:
        raise ValueError(f"check-in day {day} is not after last check-in {last_check_in}")

    current_streak = max(0, int(current_streak))
    longest_streak = max(current_streak, int(longest_streak))

    if last_check_in is not None and _is_consecutive(last_check_in, day):
        new_streak = current_streak + 1
        return CheckInPlan(
            current_streak=new_streak,
            longest_streak=max(longest_streak, new_streak),
        )

    if last_check_in is None:
        return CheckInPlan(current_streak=1, longest_streak=max(longest_streak, 1))

    missed_days = (day - last_check_in).days - 1
    if max(0, int(freeze_tokens)) >= missed_days:
        frozen_days = [last_check_in + timedelta(days=offset) for offset in range(1, missed_days + 1)]
        new_streak = current_streak + missed_days + 1
        return CheckInPlan(
            current_streak=new_streak,
            longest_streak=max(longest_streak, new_streak),
            freeze_tokens_used=missed_days,
            frozen_days=frozen_days,
        )

    return CheckInPlan(
        current_streak=1,
        longest_streak=max(longest_streak, 1),
        streak_broken=True,
    )


def recompute_current_streak(check_in_days: Iterable) -> tuple[int, Optional[date]]:
    """Walk back from the most recent day and count consecutive days."""
    days = {parsed for parsed in (_as_date(raw) for raw in check_in_days) if parsed is not None}
    if not days:
        return 0, None

    last_day = max(days)
    current_streak = 0
    cursor = last_day
    while cursor in days:
        current_streak += 1
        cursor -= timedelta(days=1)

    return current_streak, last_day
