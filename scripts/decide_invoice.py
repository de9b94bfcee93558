"""Apply reviewer decisions to an invoice from the command line.

Usage:
    python scripts/decide_invoice.py confirm LINE_ITEM_ID stabling
    python scripts/decide_invoice.py keep LINE_ITEM_ID
    python scripts/decide_invoice.py resolve INVOICE_ID "Valentna" --entity ENTITY_ID
    python scripts/decide_invoice.py resolve INVOICE_ID "New Pony" --create "New Pony"
    python scripts/decide_invoice.py approve INVOICE_ID [--version N]
    python scripts/decide_invoice.py reject INVOICE_ID "Duplicate upload"
"""

import argparse
from pathlib import Path

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from core.config import get_config
from core.errors import ReconciliationError
from entity_matcher import EntityMatcher
from reclassifier import LineItemReclassifier
from split_engine import InvoiceSplitEngine


def main() -> None:
    parser = argparse.ArgumentParser(description="Record reviewer decisions")
    parser.add_argument("--db", type=Path, help="SQLite database (default: RECON_DB_PATH)")
    parser.add_argument("--actor", default="cli", help="Reviewer name for the logs")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("confirm", help="Move a line item to another category on approval")
    p.add_argument("line_item_id")
    p.add_argument("category")

    p = sub.add_parser("keep", help="Keep a line item in its current category")
    p.add_argument("line_item_id")

    p = sub.add_parser("resolve", help="Resolve an unmatched entity name")
    p.add_argument("invoice_id")
    p.add_argument("raw_name")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--entity", help="Existing roster entity id")
    group.add_argument("--create", metavar="NAME", help="Register a new entity with this name")
    p.add_argument("--owner", help="Owner for --create")

    p = sub.add_parser("approve", help="Approve and split off reclassified items")
    p.add_argument("invoice_id")
    p.add_argument("--version", type=int, help="Fail if the invoice changed since this version")

    p = sub.add_parser("reject", help="Reject an invoice")
    p.add_argument("invoice_id")
    p.add_argument("reason")

    args = parser.parse_args()
    db_path = args.db or get_config().db_path

    try:
        if args.command in ("confirm", "keep"):
            category = args.category if args.command == "confirm" else None
            item = LineItemReclassifier(db_path).confirm(args.line_item_id, category, actor=args.actor)
            print(f"✓ {item.id}: {item.confirmation.value} {item.confirmed_category or ''}".rstrip())

        elif args.command == "resolve":
            matcher = EntityMatcher(db_path)
            if args.entity:
                result = matcher.resolve_to_existing(args.invoice_id, args.raw_name, args.entity, actor=args.actor)
            else:
                result = matcher.resolve_by_creating(
                    args.invoice_id, args.raw_name, args.create, owner=args.owner, actor=args.actor
                )
            print(f"✓ '{result.raw_name}' → {result.entity_id} ({len(result.line_item_ids)} line item(s))")

        elif args.command == "approve":
            result = InvoiceSplitEngine(db_path).approve(
                args.invoice_id, expected_version=args.version, actor=args.actor
            )
            print(f"✓ Approved {result.invoice_id}: retained {result.retained_total}")
            for sibling in result.siblings:
                print(f"  → {sibling.category}: {sibling.invoice_id} ({sibling.item_count} item(s), {sibling.total})")

        elif args.command == "reject":
            invoice = InvoiceSplitEngine(db_path).reject(args.invoice_id, args.reason, actor=args.actor)
            print(f"✓ Rejected {invoice.id}: {invoice.rejection_reason}")

    except ReconciliationError as e:
        print(f"❌ {e.code}: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
