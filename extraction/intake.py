"""Intake of extracted invoice data.

Exposes high-level function:
- ingest_extracted_invoice(payload, category) -> Invoice

The document-understanding service returns one JSON object per uploaded
document. Intake turns it into a pending invoice: line items land in the
invoice's category carrying the extraction's category suggestion, and entity
names are matched against the roster. Confident matches bind immediately;
everything else is recorded as an unmatched name for the reviewer.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from category_registry import CategoryRegistry, normalize_category_key
from core.config import ReconciliationConfig, get_config
from core.errors import ValidationError
from core.observability import get_logger
from entity_matcher import EntityMatcher
from models.canonical import (
    DateValue,
    DecimalValue,
    EntityAttribution,
    Invoice,
    LineItem,
    new_id,
)
from storage import find_source_invoice_id, init_invoice_db, insert_invoice, invoice_operation

logger = get_logger(__name__)


# =============================================================================
# Extracted payload models
# =============================================================================

class ExtractedLineItem(BaseModel):
    """One line item as returned by extraction."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    description: Optional[str] = None
    amount: Optional[DecimalValue] = Field(
        default=None, validation_alias=AliasChoices("amount", "total_usd", "total")
    )
    horse_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("horse_name", "horseName", "entity_name")
    )
    suggested_category: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("suggested_category", "suggestedCategory")
    )


class ExtractedInvoice(BaseModel):
    """Extraction output for one document."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    invoice_number: Optional[str] = None
    invoice_date: Optional[DateValue] = None
    invoice_total: Optional[DecimalValue] = Field(
        default=None, validation_alias=AliasChoices("invoice_total", "invoice_total_usd")
    )
    currency: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("currency", "original_currency")
    )
    provider_name: Optional[str] = None
    horse_name: Optional[str] = None
    line_items: List[ExtractedLineItem] = Field(default_factory=list)


def parse_json_str(raw_text: str) -> dict:
    """Parse JSON from a model response, extracting the JSON block if needed."""
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        start = raw_text.find("{")
        end = raw_text.rfind("}")
        if start >= 0 and end > start:
            return json.loads(raw_text[start:end + 1])
        raise


def load_extracted_invoice(payload: Union[str, Dict[str, Any]]) -> ExtractedInvoice:
    """Parse and validate extraction output.

    Raises:
        ValidationError: the text holds no JSON object, or a field (amount,
            date, line item shape) cannot be read
    """
    try:
        data = parse_json_str(payload) if isinstance(payload, str) else payload
    except json.JSONDecodeError as exc:
        raise ValidationError("Extraction output is not valid JSON", {"error": str(exc)})

    try:
        return ExtractedInvoice.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Extraction output failed validation", {"errors": errors})


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# =============================================================================
# Intake
# =============================================================================

def build_invoice(
    extracted: ExtractedInvoice,
    category: str,
    categories: CategoryRegistry,
    provider_id: Optional[str] = None,
    provider_name: Optional[str] = None,
    source_document: Optional[str] = None,
) -> Invoice:
    """Build an in-memory pending invoice from extraction output.

    Suggestions naming an unregistered category are dropped (logged), never
    fatal: the reviewer can still confirm a real category.
    """
    invoice_id = new_id()
    line_items = []
    for position, raw in enumerate(extracted.line_items):
        suggestion = normalize_category_key(raw.suggested_category)
        if suggestion is not None and categories.get_by_slug(suggestion) is None:
            logger.warning(
                f"Dropping unknown category suggestion '{raw.suggested_category}'",
                extra_fields={"position": position},
            )
            suggestion = None

        horse = _clean(raw.horse_name)
        line_items.append(LineItem(
            invoice_id=invoice_id,
            position=position,
            description=_clean(raw.description),
            amount=raw.amount if raw.amount is not None else 0,
            current_category=category,
            suggested_category=suggestion,
            entity=EntityAttribution.unresolved(horse) if horse else None,
        ))

    invoice_horse = _clean(extracted.horse_name)
    return Invoice(
        id=invoice_id,
        category=category,
        provider_id=provider_id,
        provider_name=provider_name or _clean(extracted.provider_name),
        invoice_number=_clean(extracted.invoice_number),
        invoice_date=extracted.invoice_date,
        invoice_total=extracted.invoice_total,
        currency=_clean(extracted.currency),
        source_document=source_document,
        entity=EntityAttribution.unresolved(invoice_horse) if invoice_horse else None,
        line_items=line_items,
    )


def ingest_extracted_invoice(
    payload: Union[str, Dict[str, Any]],
    category: str,
    provider_id: Optional[str] = None,
    provider_name: Optional[str] = None,
    source_document: Optional[str] = None,
    db_path: Optional[Path] = None,
    config: Optional[ReconciliationConfig] = None,
    matcher: Optional[EntityMatcher] = None,
    categories: Optional[CategoryRegistry] = None,
) -> Invoice:
    """Create a pending invoice from extraction output.

    Args:
        payload: Extraction JSON (dict or raw response text)
        category: Category the document was uploaded under
        provider_id: Provider reference, if known
        provider_name: Free-text provider name (falls back to the extracted one)
        source_document: Reference to the uploaded document
        db_path: Path to SQLite database (defaults to the configured one)

    Returns:
        The persisted invoice, with unmatched names recorded

    Raises:
        NotFoundError: ``category`` is not registered
        ValidationError: the payload is unreadable, or ``source_document``
            was already ingested
    """
    config = config or get_config()
    db_path = Path(db_path) if db_path else config.db_path
    categories = categories or CategoryRegistry(db_path, config)
    matcher = matcher or EntityMatcher(db_path, config)
    init_invoice_db(db_path)

    extracted = load_extracted_invoice(payload)
    category_key = categories.require(category).key

    invoice = build_invoice(
        extracted, category_key, categories,
        provider_id=provider_id,
        provider_name=provider_name,
        source_document=source_document,
    )

    with invoice_operation(
        invoice.id, "ingest", db_path, logger,
        timeout=config.busy_timeout_seconds, locks=matcher.locks,
        category=category_key, actor="extraction",
    ) as conn:
        if source_document:
            existing = find_source_invoice_id(conn, source_document)
            if existing:
                raise ValidationError(
                    f"Document {source_document} was already ingested as invoice {existing}",
                    {"source_document": source_document, "invoice_id": existing},
                )

        matches = matcher.auto_bind(invoice, conn=conn)
        insert_invoice(conn, invoice)

        logger.info(
            f"Ingested invoice with {len(invoice.line_items)} line item(s)",
            extra_fields={
                "names_matched": sum(1 for m in matches if m.is_auto_bound),
                "names_unmatched": len(invoice.unmatched_names),
                "invoice_total": str(invoice.invoice_total),
            },
        )

    return invoice
