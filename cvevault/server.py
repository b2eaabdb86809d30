"""
Run the API server bound to HOST/PORT from settings:

  python -m cvevault.server

Exits non-zero when the app fails to start (e.g. the SQLite file cannot be opened).
"""

import logging
import sys

import uvicorn

from cvevault.core.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Serve cvevault.main:app until interrupted."""
    settings = get_settings()
    config = uvicorn.Config(
        "cvevault.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level="debug" if settings.DEBUG else "info",
        lifespan="on",
    )
    server = uvicorn.Server(config)
    try:
        server.run()
    except Exception as e:
        logger.exception("Server failed: %s", e)
        return 1
    # uvicorn sets started only after the lifespan startup succeeded.
    return 0 if server.started else 1


if __name__ == "__main__":
    sys.exit(main())
