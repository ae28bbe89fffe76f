#!/usr/bin/env python3
"""
Cron script to build the weekly health report.

Usage:
    python scripts/generate_weekly_report.py --publisher github

Publishing to GitHub needs GITHUB_TOKEN and GITHUB_REPOSITORY (both are
set automatically inside GitHub Actions).

    # Mondays at 08:00
    0 8 * * 1 cd /path/to/statpulse && python scripts/generate_weekly_report.py --publisher file
"""

import sys
import logging
from pathlib import Path

# Add src to path so we can import statpulse without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from statpulse.cli.main import run_report
from statpulse.logging_config import configure_logging
from statpulse.tracing import configure_tracing

logger = logging.getLogger(__name__)


def main():
    configure_logging()
    configure_tracing()
    logger.info("Generating weekly report")
    sys.exit(run_report(sys.argv[1:]))


if __name__ == "__main__":
    main()
