"""
Extraction Intake Tests

Validates that extraction output becomes a pending invoice:
1. Field aliases used by the extraction prompt are accepted
2. Unknown category suggestions are dropped, known ones normalized
3. Entity names are matched or recorded as unmatched
4. A document is ingested at most once
"""

import json
from decimal import Decimal

import pytest

from core.errors import NotFoundError, ValidationError
from extraction import ExtractedInvoice, ingest_extracted_invoice, parse_json_str
from models import ApprovalState
from storage import get_invoice, list_invoices


SAMPLE_EXTRACTION = {
    "invoice_number": "7731",
    "invoice_date": "01/15/2024",
    "original_currency": "USD",
    "invoice_total_usd": "1,275.00",
    "provider_name": "Wellington Equine Clinic",
    "horse_name": None,
    "line_items": [
        {"description": "Exam", "horse_name": "Valentina", "total_usd": "150.00", "suggestedCategory": None},
        {"description": "Shavings", "horse_name": "Valentina", "total_usd": "125.00", "suggestedCategory": "feed-bedding"},
        {"description": "Stall rent", "horse_name": "Cosmo", "total_usd": "1,000.00", "suggestedCategory": "Stabling"},
    ],
}


class TestExtractedPayload:

    def test_aliases(self):
        extracted = ExtractedInvoice.model_validate(SAMPLE_EXTRACTION)
        assert extracted.invoice_total == Decimal("1275.00")
        assert extracted.currency == "USD"
        assert str(extracted.invoice_date) == "2024-01-15"
        assert extracted.line_items[2].amount == Decimal("1000.00")
        assert extracted.line_items[1].suggested_category == "feed-bedding"

    def test_parse_json_str_from_chatty_response(self):
        raw = "Here is the data:\n```json\n" + json.dumps({"invoice_number": "1"}) + "\n```"
        assert parse_json_str(raw) == {"invoice_number": "1"}

    def test_parse_json_str_rejects_garbage(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_str("no json here")


class TestIngest:

    def test_ingest_sample(self, roster, matcher, categories, temp_db, recon_config):
        valentina = roster.register("Valentina")
        invoice = ingest_extracted_invoice(
            SAMPLE_EXTRACTION,
            "veterinary",
            source_document="uploads/7731.pdf",
            db_path=temp_db,
            config=recon_config,
            matcher=matcher,
            categories=categories,
        )

        stored = get_invoice(invoice.id, temp_db)
        assert stored.approval_state == ApprovalState.PENDING
        assert stored.category == "veterinary"
        assert stored.provider_name == "Wellington Equine Clinic"
        assert stored.invoice_total == Decimal("1275.00")
        assert [i.position for i in stored.line_items] == [0, 1, 2]
        assert all(i.current_category == "veterinary" for i in stored.line_items)
        assert [i.suggested_category for i in stored.line_items] == [None, "feed_bedding", "stabling"]

        assert stored.line_items[0].entity.entity_id == valentina.id
        assert stored.line_items[1].entity.entity_id == valentina.id
        assert stored.unresolved_names() == ["Cosmo"]

    def test_unknown_suggestion_dropped(self, make_invoice):
        invoice = make_invoice("admin", [(10, None, "spa-days"), (20, None, "supplies")])
        assert [i.suggested_category for i in invoice.line_items] == [None, "supplies"]

    def test_unknown_category(self, make_invoice):
        with pytest.raises(NotFoundError):
            make_invoice("spa-days", [(10,)])

    def test_missing_amount_defaults_to_zero(self, categories, matcher, temp_db, recon_config):
        invoice = ingest_extracted_invoice(
            '{"line_items": [{"description": "Note only"}]}',
            "admin",
            db_path=temp_db,
            config=recon_config,
            matcher=matcher,
            categories=categories,
        )
        assert invoice.line_items[0].amount == Decimal("0")
        assert invoice.invoice_total is None

    @pytest.mark.parametrize("payload, field", [
        ({"line_items": [{"description": "Shoeing", "amount": "N/A"}]}, "line_items.0.amount"),
        ({"invoice_date": "yesterday", "line_items": []}, "invoice_date"),
        ({"line_items": "none"}, "line_items"),
    ])
    def test_unreadable_fields_rejected(self, payload, field, categories, matcher, temp_db, recon_config):
        with pytest.raises(ValidationError) as exc:
            ingest_extracted_invoice(
                payload, "admin",
                db_path=temp_db, config=recon_config, matcher=matcher, categories=categories,
            )
        assert exc.value.code == "validation_error"
        assert [e["loc"] for e in exc.value.details["errors"]] == [field]
        assert list_invoices(db_path=temp_db) == []

    def test_non_json_text_rejected(self, categories, matcher, temp_db, recon_config):
        with pytest.raises(ValidationError) as exc:
            ingest_extracted_invoice(
                "Sorry, I could not read this document.", "admin",
                db_path=temp_db, config=recon_config, matcher=matcher, categories=categories,
            )
        assert exc.value.to_dict()["code"] == "validation_error"
        assert "error" in exc.value.details

    def test_duplicate_document(self, make_invoice, temp_db):
        first = make_invoice("admin", [(10,)], source_document="uploads/a.pdf")
        with pytest.raises(ValidationError) as exc:
            make_invoice("admin", [(10,)], source_document="uploads/a.pdf")
        assert exc.value.details["invoice_id"] == first.id

    def test_siblings_do_not_count_as_duplicates(self, make_invoice, split_engine):
        invoice = make_invoice("admin", [(10,), (5, None, "supplies")], source_document="uploads/b.pdf")
        split_engine.approve(invoice.id)
        with pytest.raises(ValidationError) as exc:
            make_invoice("admin", [(10,)], source_document="uploads/b.pdf")
        assert exc.value.details["invoice_id"] == invoice.id
