"""Marketplace management CLI.

Operational commands that run outside the request cycle.

Usage:
    python src/manage.py auto-confirm                 # Complete overdue deliveries
    python src/manage.py auto-confirm --as-of 2026-01-31T00:00:00+00:00
    python src/manage.py stock-status <variant_id> [<variant_id> ...]
"""

import argparse
import sys
from datetime import datetime


def _domain():
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


def auto_confirm(as_of: datetime | None = None) -> list[str]:
    """Run the auto-confirm sweep once and report what it completed."""
    from marketplace.order.receipt import auto_confirm_deliveries

    with _domain().domain_context():
        completed = auto_confirm_deliveries(as_of)

    print(f"Auto-confirmed {len(completed)} sub-order(s).")
    for sub_order_id in completed:
        print(f"  {sub_order_id}")
    return completed


def stock_status(variant_ids: list[str]) -> dict[str, str]:
    """Print the derived stock status of each variant."""
    from marketplace.errors import NotFoundError
    from marketplace.inventory.ledger import stock_status as derive_status

    statuses = {}
    with _domain().domain_context():
        for variant_id in variant_ids:
            try:
                statuses[variant_id] = derive_status(variant_id)
            except NotFoundError:
                statuses[variant_id] = "not_found"
            print(f"{variant_id}: {statuses[variant_id]}")
    return statuses


def main(argv=None):
    parser = argparse.ArgumentParser(description="Marketplace management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    confirm_parser = subparsers.add_parser("auto-confirm", help="Complete deliveries past the confirmation window")
    confirm_parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="Evaluate the window as of this ISO timestamp (default: now)",
    )

    status_parser = subparsers.add_parser("stock-status", help="Show the stock status of variants")
    status_parser.add_argument("variant_ids", nargs="+")

    args = parser.parse_args(argv)

    if args.command == "auto-confirm":
        auto_confirm(args.as_of)
    elif args.command == "stock-status":
        stock_status(args.variant_ids)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
