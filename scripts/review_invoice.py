"""Print the review report for one invoice, or ingest an extraction JSON first.

Usage:
    python scripts/review_invoice.py INVOICE_ID [--db PATH] [--json]
    python scripts/review_invoice.py --ingest extracted.json --category stabling
"""

import argparse
import json
from pathlib import Path

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from category_registry import CategoryRegistry
from core.config import get_config
from core.errors import ReconciliationError
from entity_matcher import EntityMatcher
from extraction import ingest_extracted_invoice
from reconciliation import format_review, review_invoice
from storage import get_invoice


def main() -> None:
    parser = argparse.ArgumentParser(description="Review an invoice before approval")
    parser.add_argument("invoice_id", nargs="?", help="Invoice to review")
    parser.add_argument("--db", type=Path, help="SQLite database (default: RECON_DB_PATH)")
    parser.add_argument("--ingest", type=Path, help="Extraction JSON to ingest first")
    parser.add_argument("--category", help="Category for --ingest")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    db_path = args.db or get_config().db_path
    categories = CategoryRegistry(db_path)

    try:
        if args.ingest:
            if not args.category:
                parser.error("--ingest requires --category")
            invoice = ingest_extracted_invoice(
                args.ingest.read_text(encoding="utf-8"),
                args.category,
                source_document=str(args.ingest),
                db_path=db_path,
                categories=categories,
            )
        elif args.invoice_id:
            invoice = get_invoice(args.invoice_id, db_path)
            if invoice is None:
                parser.error(f"Invoice {args.invoice_id} not found")
        else:
            parser.error("Give an invoice id or --ingest")
    except ReconciliationError as e:
        print(f"❌ {e.code}: {e.message}")
        sys.exit(1)

    report = review_invoice(invoice, categories=categories)
    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    print(format_review(report))

    matcher = EntityMatcher(db_path)
    names = matcher.extract_candidate_names(invoice)
    if names:
        print("\nUnmatched names:")
        for raw_name in names:
            match = matcher.match(raw_name)
            hint = f" → maybe {match.entity_name} ({match.confidence.value})" if match.entity_id else ""
            print(f"  • {raw_name}{hint}")


if __name__ == "__main__":
    main()
