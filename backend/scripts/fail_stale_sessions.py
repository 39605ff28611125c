"""Fail orphaned agent sessions: rows stuck in 'running' after their process died.

Usage:
    python scripts/fail_stale_sessions.py            # default: idle for 30+ minutes
    python scripts/fail_stale_sessions.py --minutes 120
"""

import argparse
import asyncio
from datetime import UTC, datetime, timedelta

from charis.core.config import get_settings
from charis.db.base import close_db, get_session_factory, init_db
from charis.services.session_store import AgentSessionStore


async def main(minutes: int) -> None:
    await init_db(get_settings().database_url)
    store = AgentSessionStore(get_session_factory())

    running = await store.list_running()
    print(f"Found {len(running)} running session(s):")
    for row in running:
        print(f"  {row['id']} | user={row['user_id']} | step={row['current_step']} | updated={row['updated_at']}")

    cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
    failed = await store.fail_stale(cutoff)
    print(f"\nMarked {failed} stale session(s) as failed (idle since before {cutoff.isoformat()}).")

    await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--minutes", type=int, default=30, help="idle threshold in minutes")
    asyncio.run(main(parser.parse_args().minutes))
