"""
In-memory stand-in for an asyncpg connection.

Queries are dispatched on their normalized SQL text. ``transaction()``
snapshots state and restores it when the block raises, and the
``(habit_id, check_in_date)`` unique constraint raises
``asyncpg.UniqueViolationError`` like the real table does.
"""

import copy
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

import asyncpg


def _normalize(query: str) -> str:
    return " ".join(query.split())


class _FakeTransaction:
    def __init__(self, conn: "FakeStreakConn"):
        self.conn = conn
        self.snapshot = None

    async def __aenter__(self):
        self.snapshot = self.conn.snapshot()
        self.conn.transactions_opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.conn.restore(self.snapshot)
            self.conn.rollbacks += 1
        return False


class FakeStreakConn:
    def __init__(self):
        self.users: dict[str, dict[str, Any]] = {}
        self.habits: dict[str, dict[str, Any]] = {}
        self.check_ins: dict[tuple[str, date], dict[str, Any]] = {}
        self.events: list[dict[str, Any]] = []
        self.queries: list[str] = []
        self.fail_on: Optional[str] = None
        self.transactions_opened = 0
        self.rollbacks = 0

    # --- fixtures helpers -------------------------------------------------

    def add_user(
        self,
        user_id: Optional[str] = None,
        *,
        coins: int = 0,
        freeze_tokens: int = 0,
        fitbit_access_token: Optional[str] = None,
        google_fit_access_token: Optional[str] = None,
        email: Optional[str] = None,
    ) -> str:
        user_id = user_id or str(uuid.uuid4())
        self.users[user_id] = {
            "id": user_id,
            "email": email or f"{user_id[:8]}@example.com",
            "name": "Streak User",
            "coins": coins,
            "freeze_tokens": freeze_tokens,
            "fitbit_access_token": fitbit_access_token,
            "google_fit_access_token": google_fit_access_token,
        }
        return user_id

    def add_habit(self, user_id: str, **fields) -> str:
        habit_id = fields.pop("id", None) or str(uuid.uuid4())
        habit = {
            "id": habit_id,
            "user_id": user_id,
            "title": "Morning run",
            "emoji": "🔥",
            "color": "#f97316",
            "target_days": 0,
            "current_streak": 0,
            "longest_streak": 0,
            "last_check_in": None,
            "stake_amount": 0,
            "stake_status": "none",
            "auto_checkin_source": "none",
            "auto_checkin_min_steps": 2000,
            "auto_checkin_min_minutes": 10,
        }
        habit.update(fields)
        self.habits[habit_id] = habit
        return habit_id

    def add_check_in(
        self,
        habit_id: str,
        day: date,
        *,
        status: str = "checked_in",
        tier: str = "full",
    ) -> None:
        habit = self.habits[habit_id]
        self.check_ins[(habit_id, day)] = {
            "habit_id": habit_id,
            "user_id": habit["user_id"],
            "check_in_date": day,
            "status": status,
            "tier": tier,
            "mood": None,
            "note": None,
        }

    def days_for(self, habit_id: str, status: Optional[str] = None) -> list[date]:
        return sorted(
            day
            for (record_habit_id, day), record in self.check_ins.items()
            if record_habit_id == habit_id and (status is None or record["status"] == status)
        )

    # --- transaction support ----------------------------------------------

    def snapshot(self):
        return copy.deepcopy((self.users, self.habits, self.check_ins))

    def restore(self, snapshot) -> None:
        self.users, self.habits, self.check_ins = copy.deepcopy(snapshot)

    def transaction(self):
        return _FakeTransaction(self)

    def _record(self, query: str) -> str:
        normalized = _normalize(query)
        self.queries.append(normalized)
        if self.fail_on and self.fail_on in normalized:
            raise RuntimeError(f"injected failure on: {self.fail_on}")
        return normalized

    # --- asyncpg surface ----------------------------------------------------

    async def fetchrow(self, query: str, *args):
        q = self._record(query)

        if q.startswith("SELECT id, user_id, title") and "FROM habits WHERE id = $1" in q:
            habit = self.habits.get(str(args[0]))
            return dict(habit) if habit else None

        if q.startswith("SELECT status FROM check_ins"):
            record = self.check_ins.get((str(args[0]), args[1]))
            return {"status": record["status"]} if record else None

        if q.startswith("SELECT freeze_tokens FROM users"):
            user = self.users.get(str(args[0]))
            return {"freeze_tokens": user["freeze_tokens"]} if user else None

        if q.startswith("SELECT id, email, name, coins, freeze_tokens"):
            user = self.users.get(str(args[0]))
            return dict(user) if user else None

        if q.startswith("DELETE FROM check_ins") and "RETURNING tier" in q:
            key = (str(args[0]), args[1])
            record = self.check_ins.get(key)
            if record is None or record["status"] != args[2]:
                return None
            del self.check_ins[key]
            return {"tier": record["tier"]}

        if q.startswith("UPDATE users SET coins = coins - $1, freeze_tokens = freeze_tokens + 1"):
            price, user_id = int(args[0]), str(args[1])
            user = self.users.get(user_id)
            if user is None or user["coins"] < price:
                return None
            user["coins"] -= price
            user["freeze_tokens"] += 1
            return {"coins": user["coins"], "freeze_tokens": user["freeze_tokens"]}

        if q.startswith("UPDATE users SET coins = coins - $1") and "AND coins >= $1 RETURNING coins" in q:
            amount, user_id = int(args[0]), str(args[1])
            user = self.users.get(user_id)
            if user is None or user["coins"] < amount:
                return None
            user["coins"] -= amount
            return {"coins": user["coins"]}

        if q.startswith("UPDATE users SET coins = coins + $1") and "RETURNING coins" in q:
            user = self.users.get(str(args[1]))
            if user is None:
                return None
            user["coins"] += int(args[0])
            return {"coins": user["coins"]}

        if q.startswith("UPDATE habits SET stake_status = 'lost'"):
            habit = self.habits.get(str(args[0]))
            if habit is None or habit["user_id"] != str(args[1]) or habit["stake_status"] != "active":
                return None
            habit["stake_status"] = "lost"
            habit["stake_amount"] = 0
            return {"stake_status": "lost"}

        if q.startswith("INSERT INTO habits"):
            habit_id = self.add_habit(
                str(args[0]),
                title=args[1],
                emoji=args[2],
                color=args[3],
                target_days=args[4],
                auto_checkin_source=args[5],
                auto_checkin_min_steps=args[6],
                auto_checkin_min_minutes=args[7],
            )
            return dict(self.habits[habit_id])

        if q.startswith("UPDATE habits SET") and "RETURNING" in q:
            habit = self.habits.get(str(args[-1]))
            if habit is None:
                return None
            for column, index in re.findall(r"(\w+) = \$(\d+)", q.split("WHERE")[0]):
                habit[column] = args[int(index) - 1]
            return dict(habit)

        raise AssertionError(f"Unexpected fetchrow query: {q}")

    async def fetch(self, query: str, *args):
        q = self._record(query)

        if q.startswith("SELECT check_in_date FROM check_ins"):
            habit_id = str(args[0])
            return [{"check_in_date": day} for day in reversed(self.days_for(habit_id))]

        if q.startswith("SELECT check_in_date, status, tier, mood, note FROM check_ins"):
            habit_id, start, end = str(args[0]), args[1], args[2]
            return [
                dict(self.check_ins[(habit_id, day)])
                for day in self.days_for(habit_id)
                if start <= day < end
            ]

        if q.startswith("SELECT id, user_id, title") and "WHERE user_id = $1" in q:
            return [dict(habit) for habit in self.habits.values() if habit["user_id"] == str(args[0])]

        if "FROM habits h JOIN users u" in q:
            rows = []
            ordered = sorted(
                self.habits.values(),
                key=lambda item: (item["user_id"], item["auto_checkin_source"], item["id"]),
            )
            for habit in ordered:
                user = self.users.get(habit["user_id"])
                source = habit["auto_checkin_source"]
                if source not in args[0] or not user:
                    continue
                token = user.get(f"{source}_access_token")
                if not token:
                    continue
                rows.append(
                    {
                        "habit_id": habit["id"],
                        "user_id": habit["user_id"],
                        "auto_checkin_source": source,
                        "auto_checkin_min_steps": habit["auto_checkin_min_steps"],
                        "auto_checkin_min_minutes": habit["auto_checkin_min_minutes"],
                        "access_token": token,
                    }
                )
            return rows

        raise AssertionError(f"Unexpected fetch query: {q}")

    async def execute(self, query: str, *args):
        q = self._record(query)

        if q.startswith("INSERT INTO check_ins") and "VALUES" in q:
            habit_id, user_id, day, status, tier, mood, note = args
            key = (str(habit_id), day)
            if key in self.check_ins:
                raise asyncpg.UniqueViolationError("duplicate key value violates unique constraint")
            self.check_ins[key] = {
                "habit_id": str(habit_id),
                "user_id": str(user_id),
                "check_in_date": day,
                "status": status,
                "tier": tier,
                "mood": mood,
                "note": note,
            }
            return "INSERT 0 1"

        if q.startswith("INSERT INTO check_ins") and "unnest" in q:
            habit_id, user_id, days, status = args
            for day in days:
                key = (str(habit_id), day)
                if key in self.check_ins:
                    raise asyncpg.UniqueViolationError("duplicate key value violates unique constraint")
                self.check_ins[key] = {
                    "habit_id": str(habit_id),
                    "user_id": str(user_id),
                    "check_in_date": day,
                    "status": status,
                    "tier": "full",
                    "mood": None,
                    "note": None,
                }
            return f"INSERT 0 {len(days)}"

        if q.startswith("UPDATE habits SET current_streak = $1, longest_streak = $2"):
            habit = self.habits[str(args[3])]
            habit["current_streak"] = args[0]
            habit["longest_streak"] = args[1]
            habit["last_check_in"] = args[2]
            return "UPDATE 1"

        if q.startswith("UPDATE habits SET current_streak = $1, longest_streak = GREATEST"):
            habit = self.habits[str(args[2])]
            habit["current_streak"] = args[0]
            habit["longest_streak"] = max(habit["longest_streak"], args[0])
            habit["last_check_in"] = args[1]
            return "UPDATE 1"

        if q.startswith("UPDATE users SET freeze_tokens = freeze_tokens - $1"):
            user = self.users[str(args[1])]
            user["freeze_tokens"] -= int(args[0])
            return "UPDATE 1"

        if q.startswith("UPDATE users SET coins = coins + $1"):
            user = self.users.get(str(args[1]))
            if user is None:
                return "UPDATE 0"
            user["coins"] += int(args[0])
            return "UPDATE 1"

        if q.startswith("UPDATE users SET coins = GREATEST(coins - $1, 0)"):
            user = self.users.get(str(args[1]))
            if user is None:
                return "UPDATE 0"
            user["coins"] = max(user["coins"] - int(args[0]), 0)
            return "UPDATE 1"

        if q.startswith("UPDATE habits SET stake_amount = $1, stake_status = 'active'"):
            habit = self.habits[str(args[1])]
            habit["stake_amount"] = int(args[0])
            habit["stake_status"] = "active"
            return "UPDATE 1"

        if q.startswith("UPDATE habits SET stake_status = 'won'"):
            habit = self.habits[str(args[0])]
            habit["stake_status"] = "won"
            habit["stake_amount"] = 0
            return "UPDATE 1"

        if q.startswith("DELETE FROM habits"):
            habit_id = str(args[0])
            if habit_id in self.habits and self.habits[habit_id]["user_id"] == str(args[1]):
                del self.habits[habit_id]
                for key in [key for key in self.check_ins if key[0] == habit_id]:
                    del self.check_ins[key]
                return "DELETE 1"
            return "DELETE 0"

        if q.startswith("INSERT INTO events"):
            user_id, event_type, payload = args
            self.events.append(
                {
                    "user_id": str(user_id),
                    "event_type": str(event_type),
                    "payload": payload,
                    "created_at": datetime.now(timezone.utc),
                }
            )
            return "INSERT 0 1"

        raise AssertionError(f"Unexpected execute query: {q}")

    def event_types(self) -> list[str]:
        return [event["event_type"] for event in self.events]
