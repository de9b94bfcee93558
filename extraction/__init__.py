"""Extraction intake - turns document-understanding output into pending invoices."""

from extraction.intake import (
    ExtractedInvoice,
    ExtractedLineItem,
    build_invoice,
    ingest_extracted_invoice,
    load_extracted_invoice,
    parse_json_str,
)

__all__ = [
    "ExtractedInvoice",
    "ExtractedLineItem",
    "build_invoice",
    "ingest_extracted_invoice",
    "load_extracted_invoice",
    "parse_json_str",
]
