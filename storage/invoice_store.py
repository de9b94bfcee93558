"""Invoice Database Operations.

This module handles persistence of invoices under reconciliation:
- Schema initialization (invoices, line_items, unmatched_names)
- Loading an invoice with its line items and unmatched names
- Row-level writes used inside engine transactions
- Optimistic version checks

Functions that take ``conn`` expect to run inside ``storage.sqlite.transaction``
so that several writes commit or roll back together. Money is stored as TEXT
to keep Decimal precision; attributions are JSON.
"""

import json
import sqlite3
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Optional

from core.config import DEFAULT_DB_PATH
from models.canonical import (
    ApprovalState,
    ConfirmationKind,
    EntityAttribution,
    Invoice,
    LineItem,
    UnmatchedName,
    UnmatchedStatus,
)
from storage.sqlite import connect


def init_invoice_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize invoice tables.

    Creates:
    - invoices: one row per bill, with approval state and version counter
    - line_items: items owned by exactly one invoice
    - unmatched_names: resolution records keyed by (invoice_id, raw_name)

    Args:
        db_path: Path to SQLite database file
    """
    with connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS invoices (
                id TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                provider_id TEXT,
                provider_name TEXT,
                invoice_number TEXT,
                invoice_date TEXT,
                invoice_total TEXT,
                currency TEXT,
                source_document TEXT,
                entity TEXT,
                approval_state TEXT NOT NULL DEFAULT 'pending',
                parent_invoice_id TEXT,
                rejection_reason TEXT,
                approved_at TEXT,
                version INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_invoices_category
            ON invoices(category)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_invoices_parent
            ON invoices(parent_invoice_id)
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS line_items (
                id TEXT PRIMARY KEY,
                invoice_id TEXT NOT NULL REFERENCES invoices(id),
                position INTEGER NOT NULL DEFAULT 0,
                description TEXT,
                amount TEXT NOT NULL,
                current_category TEXT NOT NULL,
                suggested_category TEXT,
                confirmation TEXT NOT NULL DEFAULT 'unset',
                confirmed_category TEXT,
                entity TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_line_items_invoice
            ON line_items(invoice_id)
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS unmatched_names (
                invoice_id TEXT NOT NULL REFERENCES invoices(id),
                raw_name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'unresolved',
                entity_id TEXT,
                suggested_entity_id TEXT,
                created_at TEXT NOT NULL,
                resolved_at TEXT,
                PRIMARY KEY (invoice_id, raw_name)
            )
        """)


# =============================================================================
# Serialization helpers
# =============================================================================

def _now() -> str:
    return datetime.utcnow().isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _dump_entity(entity: Optional[EntityAttribution]) -> Optional[str]:
    if entity is None:
        return None
    return json.dumps(entity.model_dump(mode="json"))


def _load_entity(value: Optional[str]) -> Optional[EntityAttribution]:
    if not value:
        return None
    return EntityAttribution.model_validate(json.loads(value))


def _row_to_line_item(row: sqlite3.Row) -> LineItem:
    return LineItem(
        id=row["id"],
        invoice_id=row["invoice_id"],
        position=row["position"],
        description=row["description"],
        amount=Decimal(row["amount"]),
        current_category=row["current_category"],
        suggested_category=row["suggested_category"],
        confirmation=ConfirmationKind(row["confirmation"]),
        confirmed_category=row["confirmed_category"],
        entity=_load_entity(row["entity"]),
    )


def _row_to_unmatched(row: sqlite3.Row) -> UnmatchedName:
    return UnmatchedName(
        invoice_id=row["invoice_id"],
        raw_name=row["raw_name"],
        status=UnmatchedStatus(row["status"]),
        entity_id=row["entity_id"],
        suggested_entity_id=row["suggested_entity_id"],
        created_at=_dt(row["created_at"]),
        resolved_at=_dt(row["resolved_at"]),
    )


def _row_to_invoice(row: sqlite3.Row) -> Invoice:
    return Invoice(
        id=row["id"],
        category=row["category"],
        provider_id=row["provider_id"],
        provider_name=row["provider_name"],
        invoice_number=row["invoice_number"],
        invoice_date=row["invoice_date"],
        invoice_total=Decimal(row["invoice_total"]) if row["invoice_total"] is not None else None,
        currency=row["currency"],
        source_document=row["source_document"],
        entity=_load_entity(row["entity"]),
        approval_state=ApprovalState(row["approval_state"]),
        parent_invoice_id=row["parent_invoice_id"],
        rejection_reason=row["rejection_reason"],
        approved_at=_dt(row["approved_at"]),
        version=row["version"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


# =============================================================================
# Reads
# =============================================================================

def load_invoice(conn: sqlite3.Connection, invoice_id: str) -> Optional[Invoice]:
    """Load an invoice with its line items (by position) and unmatched names."""
    row = conn.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
    if row is None:
        return None

    invoice = _row_to_invoice(row)
    invoice.line_items = [
        _row_to_line_item(r)
        for r in conn.execute(
            "SELECT * FROM line_items WHERE invoice_id = ? ORDER BY position, rowid",
            (invoice_id,),
        )
    ]
    invoice.unmatched_names = [
        _row_to_unmatched(r)
        for r in conn.execute(
            "SELECT * FROM unmatched_names WHERE invoice_id = ? ORDER BY rowid",
            (invoice_id,),
        )
    ]
    return invoice


def find_invoice_id_for_line_item(conn: sqlite3.Connection, line_item_id: str) -> Optional[str]:
    row = conn.execute(
        "SELECT invoice_id FROM line_items WHERE id = ?", (line_item_id,)
    ).fetchone()
    return row["invoice_id"] if row else None


def get_invoice(invoice_id: str, db_path: Path = DEFAULT_DB_PATH) -> Optional[Invoice]:
    """Get an invoice by id.

    Args:
        invoice_id: Invoice identifier
        db_path: Path to database

    Returns:
        Invoice if found, None otherwise
    """
    with connect(db_path) as conn:
        return load_invoice(conn, invoice_id)


def list_invoices(
    db_path: Path = DEFAULT_DB_PATH,
    category: Optional[str] = None,
    parent_invoice_id: Optional[str] = None,
    approval_state: Optional[ApprovalState] = None,
) -> List[Invoice]:
    """List invoices (oldest first) with optional filters."""
    query = "SELECT id FROM invoices WHERE 1=1"
    params: list = []
    if category is not None:
        query += " AND category = ?"
        params.append(category)
    if parent_invoice_id is not None:
        query += " AND parent_invoice_id = ?"
        params.append(parent_invoice_id)
    if approval_state is not None:
        query += " AND approval_state = ?"
        params.append(approval_state.value)
    query += " ORDER BY created_at, rowid"

    with connect(db_path) as conn:
        ids = [r["id"] for r in conn.execute(query, params)]
        return [load_invoice(conn, invoice_id) for invoice_id in ids]


# =============================================================================
# Writes (inside a transaction)
# =============================================================================

def insert_invoice(conn: sqlite3.Connection, invoice: Invoice) -> Invoice:
    """Insert an invoice with its line items and unmatched names."""
    now = _now()
    conn.execute("""
        INSERT INTO invoices
        (id, category, provider_id, provider_name, invoice_number, invoice_date,
         invoice_total, currency, source_document, entity, approval_state,
         parent_invoice_id, rejection_reason, approved_at, version, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        invoice.id,
        invoice.category,
        invoice.provider_id,
        invoice.provider_name,
        invoice.invoice_number,
        invoice.invoice_date.isoformat() if invoice.invoice_date else None,
        str(invoice.invoice_total) if invoice.invoice_total is not None else None,
        invoice.currency,
        invoice.source_document,
        _dump_entity(invoice.entity),
        invoice.approval_state.value,
        invoice.parent_invoice_id,
        invoice.rejection_reason,
        invoice.approved_at.isoformat() if invoice.approved_at else None,
        invoice.version,
        now,
        now,
    ))
    invoice.created_at = datetime.fromisoformat(now)
    invoice.updated_at = datetime.fromisoformat(now)

    for position, item in enumerate(invoice.line_items):
        item.invoice_id = invoice.id
        item.position = position
        insert_line_item(conn, item)

    for unmatched in invoice.unmatched_names:
        unmatched.invoice_id = invoice.id
        upsert_unmatched_name(conn, unmatched)

    return invoice


def insert_line_item(conn: sqlite3.Connection, item: LineItem) -> None:
    conn.execute("""
        INSERT INTO line_items
        (id, invoice_id, position, description, amount, current_category,
         suggested_category, confirmation, confirmed_category, entity)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        item.id,
        item.invoice_id,
        item.position,
        item.description,
        str(item.amount),
        item.current_category,
        item.suggested_category,
        item.confirmation.value,
        item.confirmed_category,
        _dump_entity(item.entity),
    ))


def update_line_item(conn: sqlite3.Connection, item: LineItem) -> None:
    """Write back an item's category decisions and attribution."""
    conn.execute("""
        UPDATE line_items
        SET suggested_category = ?, confirmation = ?, confirmed_category = ?, entity = ?
        WHERE id = ?
    """, (
        item.suggested_category,
        item.confirmation.value,
        item.confirmed_category,
        _dump_entity(item.entity),
        item.id,
    ))


def delete_line_items(conn: sqlite3.Connection, line_item_ids: Iterable[str]) -> int:
    deleted = 0
    for line_item_id in line_item_ids:
        deleted += conn.execute("DELETE FROM line_items WHERE id = ?", (line_item_id,)).rowcount
    return deleted


def upsert_unmatched_name(conn: sqlite3.Connection, unmatched: UnmatchedName) -> None:
    """Insert or update the resolution record for (invoice_id, raw_name)."""
    created_at = (unmatched.created_at or datetime.utcnow()).isoformat()
    conn.execute("""
        INSERT INTO unmatched_names
        (invoice_id, raw_name, status, entity_id, suggested_entity_id, created_at, resolved_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(invoice_id, raw_name) DO UPDATE SET
            status = excluded.status,
            entity_id = excluded.entity_id,
            suggested_entity_id = excluded.suggested_entity_id,
            resolved_at = excluded.resolved_at
    """, (
        unmatched.invoice_id,
        unmatched.raw_name,
        unmatched.status.value,
        unmatched.entity_id,
        unmatched.suggested_entity_id,
        created_at,
        unmatched.resolved_at.isoformat() if unmatched.resolved_at else None,
    ))


def update_invoice_header(conn: sqlite3.Connection, invoice: Invoice, expected_version: int) -> bool:
    """Write header fields and bump the version if it still equals ``expected_version``.

    Returns:
        False when another writer changed the invoice first (nothing written)
    """
    cursor = conn.execute("""
        UPDATE invoices
        SET invoice_total = ?, entity = ?, approval_state = ?, rejection_reason = ?,
            approved_at = ?, version = version + 1, updated_at = ?
        WHERE id = ? AND version = ?
    """, (
        str(invoice.invoice_total) if invoice.invoice_total is not None else None,
        _dump_entity(invoice.entity),
        invoice.approval_state.value,
        invoice.rejection_reason,
        invoice.approved_at.isoformat() if invoice.approved_at else None,
        _now(),
        invoice.id,
        expected_version,
    ))
    if cursor.rowcount == 1:
        invoice.version = expected_version + 1
        return True
    return False


# =============================================================================
# Lookups
# =============================================================================

def find_source_invoice_id(conn: sqlite3.Connection, source_document: str) -> Optional[str]:
    """Id of the invoice originally created from ``source_document`` (siblings excluded)."""
    row = conn.execute("""
        SELECT id FROM invoices
        WHERE source_document = ? AND parent_invoice_id IS NULL
        ORDER BY created_at, rowid LIMIT 1
    """, (source_document,)).fetchone()
    return row["id"] if row else None
