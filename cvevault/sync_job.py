"""
CLI entrypoint for a one-shot blocking sync. Run from cron, e.g.:

  python -m cvevault.sync_job

Or nightly: 0 3 * * * cd /path/to/cvevault && .venv/bin/python -m cvevault.sync_job
"""

import asyncio
import logging
import sys

from cvevault.core.config import get_settings
from cvevault.core.database import SessionLocal
from cvevault.main import build_fetcher
from cvevault.services.store import RecordStore
from cvevault.services.sync import SyncEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Fetch the upstream feed and upsert it into the store."""
    settings = get_settings()
    store = RecordStore(SessionLocal)
    try:
        store.init_schema()
        engine = SyncEngine(store, build_fetcher(settings), batch_size=settings.SYNC_BATCH_SIZE)
        result = asyncio.run(engine.sync_blocking())
        logger.info(
            "Sync job completed: fetched=%s stored=%s errors=%s",
            result.fetched,
            result.stored,
            len(result.errors),
        )
        return 0
    except Exception as e:
        logger.exception("Sync job failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
