#!/usr/bin/env python3
"""
Create (or with --drop, recreate) every billing table.

Usage:
    python3 scripts/create_tables.py [--config billing.yaml] [--drop]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the billing schema.")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing billing tables first. Destroys data.",
    )
    args = parser.parse_args(argv)

    from rental_config import get_active_config
    from rental_kernel.db.engine import create_engine_from_url, create_tables, drop_tables
    from rental_kernel.logging_config import configure_logging

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 2
    configure_logging(level=config.log_level.upper())

    engine = create_engine_from_url(config.database_url)
    try:
        if args.drop:
            drop_tables(engine)
        create_tables(engine)
    finally:
        engine.dispose()
    print("Tables created.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
