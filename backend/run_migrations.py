from __future__ import annotations

import argparse
import logging
import sys

from bootstrap import (
    MIGRATION_MARKER_KEY,
    clear_bootstrap_marker,
    ensure_runtime_defaults,
    has_bootstrap_marker,
    run_bootstrap_migrations,
    set_bootstrap_marker,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bring the Bonhomie schema and system settings up to date.")
    parser.add_argument("--force", action="store_true", help="Rerun even when the marker is already recorded.")
    parser.add_argument(
        "--reset-marker",
        action="store_true",
        help=f"Drop the `{MIGRATION_MARKER_KEY}` marker first.",
    )
    parser.add_argument(
        "--defaults-only",
        action="store_true",
        help="Only seed registration/fest settings and the default admin; leave the schema alone.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.defaults_only:
        ensure_runtime_defaults()
        logger.info("Runtime defaults ensured")
        return 0

    if args.reset_marker and clear_bootstrap_marker():
        logger.info(f"Removed marker {MIGRATION_MARKER_KEY}")

    if has_bootstrap_marker() and not args.force:
        logger.info(f"Marker {MIGRATION_MARKER_KEY} present, skipping (pass --force to rerun)")
        return 0

    run_bootstrap_migrations()
    set_bootstrap_marker()
    logger.info(f"Bootstrap complete, marker {MIGRATION_MARKER_KEY} recorded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
