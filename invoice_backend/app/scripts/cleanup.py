"""Remove stored invoice PDFs older than the signed-URL TTL.

Run once per invocation; schedule it externally (cron, CI job).

    invoice-storage-cleanup --dry-run
    python -m invoice_backend.app.scripts.cleanup --ttl-hours 24
"""

import argparse
import sys

import structlog

from invoice_backend.app.core.logging_config import configure_logging
from invoice_backend.app.core.settings import get_settings
from invoice_backend.app.services.storage import cleanup_expired

LOGGER = structlog.get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--ttl-hours", type=int, default=None, help="override SIGNED_URL_TTL_HOURS")
    parser.add_argument("--dry-run", action="store_true", default=None, help="list expired files without deleting")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    configure_logging(get_settings().log_level)
    args = parse_args(argv)
    stats = cleanup_expired(ttl_hours=args.ttl_hours, dry_run=args.dry_run)
    if stats.errors:
        LOGGER.warning("cleanup_finished_with_errors", errors=stats.errors)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
