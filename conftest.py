"""Shared pytest fixtures: a throwaway SQLite database with seeded categories."""

import os
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from category_registry import CategoryRegistry
from core.config import ReconciliationConfig
from entity_matcher import EntityMatcher
from extraction import ingest_extracted_invoice
from reclassifier import LineItemReclassifier
from roster_registry import RosterRegistry
from split_engine import InvoiceSplitEngine


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name

    yield Path(db_path)

    # Cleanup - try to delete, ignore errors on Windows
    try:
        os.unlink(db_path)
    except PermissionError:
        pass


@pytest.fixture
def recon_config(temp_db):
    return ReconciliationConfig(db_path=temp_db)


@pytest.fixture
def categories(temp_db, recon_config):
    registry = CategoryRegistry(temp_db, recon_config)
    registry.seed_defaults()
    return registry


@pytest.fixture
def roster(temp_db, recon_config):
    return RosterRegistry(temp_db, recon_config)


@pytest.fixture
def matcher(temp_db, recon_config, roster):
    return EntityMatcher(temp_db, recon_config, roster=roster)


@pytest.fixture
def reclassifier(temp_db, recon_config, categories):
    return LineItemReclassifier(temp_db, recon_config, categories=categories)


@pytest.fixture
def split_engine(temp_db, recon_config):
    return InvoiceSplitEngine(temp_db, recon_config)


@pytest.fixture
def make_invoice(temp_db, recon_config, categories, matcher):
    """Ingest an invoice the way the extraction pipeline does.

    Each line is (amount,) or (amount, horse_name) or
    (amount, horse_name, suggested_category).
    """
    def _make(category, lines, invoice_total=None, horse_name=None, **kwargs):
        line_items = []
        for i, line in enumerate(lines):
            amount, name, suggestion = (tuple(line) + (None, None))[:3]
            line_items.append({
                "description": f"Line {i + 1}",
                "total_usd": str(Decimal(str(amount))),
                "horse_name": name,
                "suggestedCategory": suggestion,
            })
        payload = {
            "invoice_number": "INV-1001",
            "invoice_date": "2024-03-01",
            "currency": "USD",
            "horse_name": horse_name,
            "line_items": line_items,
        }
        if invoice_total is not None:
            payload["invoice_total_usd"] = str(invoice_total)
        return ingest_extracted_invoice(
            payload,
            category,
            db_path=temp_db,
            config=recon_config,
            matcher=matcher,
            categories=categories,
            **kwargs,
        )

    return _make
