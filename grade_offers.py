"""Command line entry point grading every offer in the configured directory."""
from __future__ import annotations

import logging
from pathlib import Path
import sys

from grading_core import create_config_from_env, run_grading_workflow

LOGGER = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    try:
        config = create_config_from_env(base_dir=BASE_DIR)
        run_grading_workflow(config, base_dir=BASE_DIR)
    except Exception:
        LOGGER.exception("Fatal error running grading script")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
