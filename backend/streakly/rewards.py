import logging
from typing import Any

from .config import settings
from .db import execute_named, fetchrow_named
from .errors import StreakError


logger = logging.getLogger("streakly-rewards")


async def grant_check_in_reward(conn: Any, *, user_id: str, tier: str) -> int:
    coins = settings.checkin_reward_coins(tier)
    if coins <= 0:
        return 0

    await execute_named(
        conn,
        "rewards.grant_check_in",
        """
        UPDATE users
        SET coins = coins + $1,
            updated_at = NOW()
        WHERE id = $2
        """,
        coins,
        user_id,
    )
    return coins


async def revoke_check_in_reward(conn: Any, *, user_id: str, tier: str) -> int:
    coins = settings.checkin_reward_coins(tier)
    if coins <= 0:
        return 0

    # Coins may already be spent; the balance stops at zero.
    await execute_named(
        conn,
        "rewards.revoke_check_in",
        """
        UPDATE users
        SET coins = GREATEST(coins - $1, 0),
            updated_at = NOW()
        WHERE id = $2
        """,
        coins,
        user_id,
    )
    return coins


async def buy_freeze_token(conn: Any, *, user_id: str) -> dict[str, int]:
    price = max(0, int(settings.FREEZE_TOKEN_PRICE_COINS))
    row = await fetchrow_named(
        conn,
        "shop.buy_freeze_token",
        """
        UPDATE users
        SET coins = coins - $1,
            freeze_tokens = freeze_tokens + 1,
            updated_at = NOW()
        WHERE id = $2
          AND coins >= $1
        RETURNING coins, freeze_tokens
        """,
        price,
        user_id,
    )
    if row is None:
        raise StreakError(
            code="INSUFFICIENT_COINS",
            message="Not enough coins. Check in daily to earn more!",
            status_code=409,
            details={"price": price},
        )

    logger.info("FREEZE_TOKEN_PURCHASED user_id=%s price=%s freeze_tokens=%s", user_id, price, row["freeze_tokens"])
    return {
        "coins": int(row["coins"]),
        "freeze_tokens": int(row["freeze_tokens"]),
        "price": price,
    }
