from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    emoji: str
    description: str
    required_days: int
    color: str


BADGES: tuple[Badge, ...] = (
    Badge("week", "Week Warrior", "🥉", "7-day streak", 7, "#cd7f32"),
    Badge("fortnight", "Two Weeks Strong", "⚡", "14-day streak", 14, "#f97316"),
    Badge("month", "Month Master", "🥈", "30-day streak", 30, "#94a3b8"),
    Badge("sixty", "Ironclad", "💎", "60-day streak", 60, "#06b6d4"),
    Badge("hundred", "Century Club", "🥇", "100-day streak", 100, "#f59e0b"),
    Badge("halfyear", "Legend", "👑", "180-day streak", 180, "#a855f7"),
    Badge("year", "Mythic", "🌟", "365-day streak", 365, "#ec4899"),
)


def get_earned_badges(longest_streak: int) -> list[Badge]:
    return [badge for badge in BADGES if longest_streak >= badge.required_days]


def get_next_badge(longest_streak: int) -> Optional[Badge]:
    for badge in BADGES:
        if longest_streak < badge.required_days:
            return badge
    return None


def get_progress_to_next(longest_streak: int) -> int:
    next_badge = get_next_badge(longest_streak)
    if next_badge is None:
        return 100
    earned = get_earned_badges(longest_streak)
    floor_days = earned[-1].required_days if earned else 0
    span = next_badge.required_days - floor_days
    # Half-up rounding; the ratio is never negative here.
    return int(((longest_streak - floor_days) * 100) / span + 0.5)


def get_newly_earned_badges(previous_longest: int, new_longest: int) -> list[Badge]:
    return [
        badge
        for badge in BADGES
        if previous_longest < badge.required_days <= new_longest
    ]
