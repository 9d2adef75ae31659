import logging
import time
import asyncpg
from typing import Optional
from .config import settings
from .observability import current_request_context

logger = logging.getLogger("streakly-db")


def _statement_timeout_ms() -> int:
    return max(0, int(settings.DB_STATEMENT_TIMEOUT_MS))


def _slow_query_threshold_ms() -> int:
    return max(0, int(settings.DB_SLOW_QUERY_MS))


def _log_slow_query(query_name: str, started_at: float) -> None:
    threshold_ms = _slow_query_threshold_ms()
    if threshold_ms <= 0:
        return

    duration = int((time.monotonic() - started_at) * 1000)
    if duration < threshold_ms:
        return

    context = current_request_context()
    payload = {
        "request_id": context.get("request_id", ""),
        "path": context.get("path", ""),
        "query_name": query_name,
        "duration_ms": duration,
        "threshold_ms": threshold_ms,
    }
    logger.warning("DB_SLOW_QUERY context=%s", payload)


async def fetch_named(conn: asyncpg.Connection, query_name: str, query: str, *args):
    started_at = time.monotonic()
    try:
        return await conn.fetch(query, *args)
    finally:
        _log_slow_query(query_name=query_name, started_at=started_at)


async def fetchrow_named(conn: asyncpg.Connection, query_name: str, query: str, *args):
    started_at = time.monotonic()
    try:
        return await conn.fetchrow(query, *args)
    finally:
        _log_slow_query(query_name=query_name, started_at=started_at)


async def execute_named(conn: asyncpg.Connection, query_name: str, query: str, *args):
    started_at = time.monotonic()
    try:
        return await conn.execute(query, *args)
    finally:
        _log_slow_query(query_name=query_name, started_at=started_at)


class Database:
    def __init__(self):
        self.pool: Optional[asyncpg.Pool] = None

    async def create_pool(self):
        if not settings.DATABASE_URL:
            logger.warning("DATABASE_URL is not set, database pool will not be created.")
            return

        try:
            self.pool = await asyncpg.create_pool(
                dsn=settings.DATABASE_URL,
                min_size=2,
                max_size=10,
                max_queries=50000,
                max_inactive_connection_lifetime=300.0,
                command_timeout=60.0,
                statement_cache_size=0,
                server_settings={"statement_timeout": f"{_statement_timeout_ms()}ms"},
            )
            logger.info("Database pool created.")

            await self.init_db()
        except Exception as e:
            logger.error(f"Failed to create database pool: {e}")
            self.pool = None

    async def init_db(self):
        if not self.pool:
            return

        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    email TEXT UNIQUE NOT NULL,
                    name TEXT,
                    coins INT NOT NULL DEFAULT 0,
                    freeze_tokens INT NOT NULL DEFAULT 0,
                    fitbit_access_token TEXT,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );

                ALTER TABLE users
                    ADD COLUMN IF NOT EXISTS google_fit_access_token TEXT;

                DO $$
                BEGIN
                    IF NOT EXISTS (
                        SELECT 1
                        FROM pg_constraint
                        WHERE conname = 'users_coins_non_negative'
                    ) THEN
                        ALTER TABLE users
                            ADD CONSTRAINT users_coins_non_negative
                            CHECK (coins >= 0);
                    END IF;

                    IF NOT EXISTS (
                        SELECT 1
                        FROM pg_constraint
                        WHERE conname = 'users_freeze_tokens_non_negative'
                    ) THEN
                        ALTER TABLE users
                            ADD CONSTRAINT users_freeze_tokens_non_negative
                            CHECK (freeze_tokens >= 0);
                    END IF;
                END $$;

                CREATE TABLE IF NOT EXISTS habits (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    emoji TEXT NOT NULL DEFAULT '🔥',
                    color TEXT NOT NULL DEFAULT '#f97316',
                    target_days INT NOT NULL DEFAULT 0,
                    current_streak INT NOT NULL DEFAULT 0,
                    longest_streak INT NOT NULL DEFAULT 0,
                    last_check_in DATE,
                    stake_amount INT NOT NULL DEFAULT 0,
                    stake_status TEXT NOT NULL DEFAULT 'none'
                        CHECK (stake_status IN ('none', 'active', 'won', 'lost')),
                    auto_checkin_source TEXT NOT NULL DEFAULT 'none'
                        CHECK (auto_checkin_source IN ('none', 'fitbit', 'google_fit')),
                    auto_checkin_min_steps INT NOT NULL DEFAULT 2000,
                    auto_checkin_min_minutes INT NOT NULL DEFAULT 10,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    CHECK (current_streak >= 0),
                    CHECK (longest_streak >= current_streak)
                );

                CREATE INDEX IF NOT EXISTS idx_habits_user_updated
                    ON habits (user_id, updated_at DESC);

                CREATE INDEX IF NOT EXISTS idx_habits_auto_checkin_source
                    ON habits (auto_checkin_source)
                    WHERE auto_checkin_source <> 'none';

                CREATE TABLE IF NOT EXISTS check_ins (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    habit_id UUID NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    check_in_date DATE NOT NULL,
                    status TEXT NOT NULL DEFAULT 'checked_in'
                        CHECK (status IN ('checked_in', 'frozen')),
                    tier TEXT NOT NULL DEFAULT 'full'
                        CHECK (tier IN ('full', 'half', 'minimal')),
                    mood TEXT CHECK (mood IS NULL OR mood IN ('happy', 'tired', 'stressed')),
                    note TEXT,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    UNIQUE (habit_id, check_in_date)
                );

                CREATE INDEX IF NOT EXISTS idx_check_ins_habit_date
                    ON check_ins (habit_id, check_in_date DESC);

                CREATE TABLE IF NOT EXISTS events (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    event_type TEXT NOT NULL,
                    payload JSONB NOT NULL DEFAULT '{}'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );

                CREATE INDEX IF NOT EXISTS idx_events_user_created
                    ON events (user_id, created_at DESC);
            """)
            logger.info("Database tables initialized.")

    async def close_pool(self):
        if self.pool:
            await self.pool.close()
            logger.info("Database pool closed.")

    async def db_check(self) -> str:
        if not settings.DATABASE_URL:
            return "disabled"

        if not self.pool:
            # The database may have been down during startup
            await self.create_pool()
            if not self.pool:
                return "fail"

        try:
            async with self.pool.acquire(timeout=5.0) as conn:
                await conn.execute("SELECT 1")
            return "ok"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return "fail"

db = Database()

async def get_db():
    if not db.pool:
        if settings.DATABASE_URL:
            await db.create_pool()

        if not db.pool:
            raise RuntimeError("Database pool is not initialized and DATABASE_URL is missing or invalid")

    async with db.pool.acquire() as conn:
        yield conn
