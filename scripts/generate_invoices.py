#!/usr/bin/env python3
"""
Generate one issued rent invoice per active lease for a billing period.

Prints the batch result ({generated, skipped, errors, invoice_ids}) as JSON.
Exits 1 when any lease failed, 2 on invalid arguments or configuration.

Usage:
    python3 scripts/generate_invoices.py --organization-id <uuid> --month M --year Y [options]

Examples:
    # March 2024, due on each lease's own due day
    python3 scripts/generate_invoices.py --organization-id 6f1c... --month 3 --year 2024

    # Override the due day and run sequentially against a config file
    python3 scripts/generate_invoices.py --organization-id 6f1c... --month 3 --year 2024 \\
        --due-day 5 --workers 1 --config billing.yaml
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate the period's rent invoices for every active lease.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--organization-id", required=True, type=UUID, help="Organization UUID.")
    parser.add_argument("--month", required=True, type=int, help="Billing month (1-12).")
    parser.add_argument("--year", required=True, type=int, help="Billing year.")
    parser.add_argument(
        "--due-day",
        type=int,
        default=None,
        help="Due day override (1-28). Default: each lease's due day of month.",
    )
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="Actor UUID for audit (default: RENTAL_BILLING_ACTOR_ID env or new UUID).",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument("--workers", type=int, default=None, help="Override batch_max_workers.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before generating.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from dataclasses import replace

    from rental_config import get_active_config
    from rental_kernel.db.engine import (
        create_engine_from_url,
        create_session_factory,
        create_tables,
    )
    from rental_kernel.domain.clock import SystemClock
    from rental_kernel.exceptions import RentalBillingError
    from rental_kernel.logging_config import configure_logging
    from rental_services import BillingService

    try:
        config = get_active_config(args.config)
        if args.workers is not None:
            config = replace(config, batch_max_workers=args.workers)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 2

    configure_logging(level=config.log_level.upper())

    actor_id = args.actor_id or UUID(os.environ.get("RENTAL_BILLING_ACTOR_ID", str(uuid4())))

    engine = create_engine_from_url(config.database_url)
    try:
        if args.create_tables:
            create_tables(engine)
        service = BillingService(
            create_session_factory(engine),
            clock=SystemClock(),
            config=config,
        )
        try:
            result = service.batch_generate_invoices(
                args.organization_id, actor_id, args.month, args.year, args.due_day,
            )
        except RentalBillingError as e:
            print(json.dumps({"error": {"code": e.code, "message": str(e)}}), file=sys.stderr)
            return 2
    finally:
        engine.dispose()

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
