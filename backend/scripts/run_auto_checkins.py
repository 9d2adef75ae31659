import asyncio
import logging
import uuid

from streakly.autocheckin import (
    AUTO_CHECKIN_SOURCE_FITBIT,
    AUTO_CHECKIN_SOURCE_GOOGLE_FIT,
    run_auto_check_ins,
)
from streakly.db import db
from streakly.integrations.fitbit import fitbit_client
from streakly.integrations.google_fit import google_fit_client


logger = logging.getLogger("streakly-auto-checkin-script")


async def _run() -> int:
    job_run_id = str(uuid.uuid4())
    await db.create_pool()
    if db.pool is None:
        logger.error("AUTO_CHECKIN_JOB_ABORT job_run_id=%s reason=no_db_pool", job_run_id)
        return 1

    try:
        async with db.pool.acquire() as conn:
            stats = await run_auto_check_ins(
                conn,
                fetchers={
                    AUTO_CHECKIN_SOURCE_FITBIT: fitbit_client.get_daily_activity,
                    AUTO_CHECKIN_SOURCE_GOOGLE_FIT: google_fit_client.get_daily_activity,
                },
                job_run_id=job_run_id,
            )
            logger.info(
                "AUTO_CHECKIN_JOB_SUMMARY job_run_id=%s total_scanned=%s checked_in=%s skipped=%s failed=%s",
                job_run_id,
                stats.total_scanned,
                stats.checked_in,
                stats.skipped,
                stats.failed,
            )
            return 0
    finally:
        await db.close_pool()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    exit_code = asyncio.run(_run())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
