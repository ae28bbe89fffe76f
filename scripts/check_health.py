#!/usr/bin/env python3
"""
Cron script to probe every configured endpoint once.

Usage:
    python scripts/check_health.py [--config config/endpoints.yaml]

Add to crontab to run automatically:
    # Every 6 hours
    0 */6 * * * cd /path/to/statpulse && python scripts/check_health.py
"""

import asyncio
import sys
import logging
from pathlib import Path

# Add src to path so we can import statpulse without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from statpulse.cli.main import run_check
from statpulse.logging_config import configure_logging
from statpulse.tracing import configure_tracing

logger = logging.getLogger(__name__)


def main():
    configure_logging()
    configure_tracing()
    logger.info("=" * 80)
    logger.info("Starting scheduled health check")
    logger.info("=" * 80)

    exit_code = asyncio.run(run_check(sys.argv[1:]))

    logger.info("Health check finished with exit code %s", exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
