"""Entry point for the job sync pipeline.

Usage:
    python -m jobsync.main                      # use default config.yaml
    python -m jobsync.main --config my.yaml     # use custom config
    python -m jobsync.main --source greenhouse  # run a single source
    python -m jobsync.main --dry-run --limit 20 # ingest and enrich, no CMS writes
    python -m jobsync.main --detect-ats         # probe boards for the firm registry
"""

from __future__ import annotations

import argparse
import logging
import sys

from jobsync.ats import load_firm_registry
from jobsync.config import load_config
from jobsync.pipeline import SyncPipeline


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job board sync: aggregate postings from Adzuna, Greenhouse "
        "and Lever, deduplicate them and keep the Webflow CMS in step."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="Run only a specific source by name (e.g., 'adzuna', 'greenhouse')",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory for caches and run history (default: from config)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Ingest, dedup and enrich, but do not write to the CMS",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Stop ingesting after this many listings",
    )
    parser.add_argument(
        "--detect-ats",
        action="store_true",
        help="Probe Greenhouse/Lever boards for the firm registry instead of syncing",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="With --detect-ats, re-probe firms even if their cache entry is valid",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug-level logging",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = load_config(args.config)
    setup_logging("DEBUG" if args.verbose else config.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Loaded config with %d sources", len(config.sources))

    if args.source:
        config.sources = [
            s for s in config.sources
            if s.name.lower() == args.source.lower()
        ]
        if not config.sources:
            logger.error("No source found matching '%s'", args.source)
            return 1
        logger.info("Filtered to source: %s", args.source)

    pipeline = SyncPipeline(config, data_dir=args.data_dir)

    if args.detect_ats:
        if not config.firm_registry:
            logger.error("firm_registry is not set in config")
            return 1
        firms = load_firm_registry(config.firm_registry)
        pipeline.detect_boards(firms, force=args.force, limit=args.limit)
        return 0

    summary = pipeline.run(dry_run=args.dry_run, limit=args.limit)
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
