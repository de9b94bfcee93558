"""Review checks for invoices awaiting approval.

Exposes high-level function:
- review_invoice(invoice) -> ReviewReport

The checks never mutate anything. They surface what a reviewer has to look
at before approving: extracted total vs line-item sum, unresolved entity
names, unbalanced split attributions, unknown target categories and the
pending reclassification preview.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from category_registry import CategoryRegistry
from models.canonical import AttributionKind, CENT, Invoice
from reclassifier import ReclassificationSummary, effective_target, summarize
from split_engine import pending_entity_names


# =============================================================================
# Configuration & Data Structures
# =============================================================================

AMOUNT_TOLERANCE = CENT


class Severity(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class CheckResult:
    """Result of a single review check."""

    def __init__(
        self,
        check_id: str,
        severity: Severity,
        passed: bool,
        message: str,
        evidence: Optional[Dict] = None,
    ):
        self.check_id = check_id
        self.severity = severity
        self.passed = passed
        self.message = message
        self.evidence = evidence or {}

    def to_dict(self) -> Dict:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "passed": self.passed,
            "message": self.message,
            "evidence": self.evidence,
        }


class ReviewReport(BaseModel):
    """Review results for one invoice.

    Attributes:
        invoice_id: Invoice reviewed
        status: Overall status ("PASS", "WARN", "FAIL")
        checks: Individual check results
        summary: Counts of passed checks, blocking issues and warnings
        reclassification: Preview of what approval will split off
    """
    invoice_id: str = Field(..., description="Invoice identifier")
    status: CheckStatus = Field(..., description="Overall status: PASS, WARN, or FAIL")
    checks: List[dict] = Field(default_factory=list, description="Individual check results")
    summary: dict = Field(default_factory=dict, description="Summary information")
    reclassification: Optional[ReclassificationSummary] = None

    @property
    def can_approve(self) -> bool:
        return self.status != CheckStatus.FAIL


# =============================================================================
# Utility Functions
# =============================================================================

def amounts_match(
    a: Optional[Decimal],
    b: Optional[Decimal],
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> bool:
    """Check if two amounts match within tolerance."""
    if a is None or b is None:
        return False
    return abs(a - b) <= tolerance


# =============================================================================
# Individual Check Functions
# =============================================================================

def check_r1_line_sum(invoice: Invoice, tolerance: Decimal = AMOUNT_TOLERANCE) -> CheckResult:
    """R1: Line item sum reconciles to the extracted invoice total."""
    if not invoice.line_items:
        return CheckResult(
            check_id="R1_LINE_SUM",
            severity=Severity.WARN,
            passed=False,
            message=f"Invoice {invoice.id} has no line items to sum",
            evidence={"invoice_id": invoice.id},
        )

    line_sum = invoice.line_sum()
    if invoice.invoice_total is None:
        return CheckResult(
            check_id="R1_LINE_SUM",
            severity=Severity.INFO,
            passed=True,
            message=f"Invoice {invoice.id} has no extracted total; line sum {line_sum} is used",
            evidence={"invoice_id": invoice.id, "line_sum": str(line_sum)},
        )

    evidence = {
        "invoice_id": invoice.id,
        "line_sum": str(line_sum),
        "invoice_total": str(invoice.invoice_total),
        "difference": str(invoice.invoice_total - line_sum),
    }
    if amounts_match(line_sum, invoice.invoice_total, tolerance):
        return CheckResult(
            check_id="R1_LINE_SUM",
            severity=Severity.INFO,
            passed=True,
            message=f"Invoice {invoice.id} line sum matches total",
            evidence=evidence,
        )
    return CheckResult(
        check_id="R1_LINE_SUM",
        severity=Severity.WARN,
        passed=False,
        message=f"Invoice {invoice.id} line sum mismatch: {line_sum} vs {invoice.invoice_total}",
        evidence=evidence,
    )


def check_r2_entities_resolved(invoice: Invoice) -> CheckResult:
    """R2: No unmatched entity names remain."""
    pending = pending_entity_names(invoice)
    if pending:
        return CheckResult(
            check_id="R2_ENTITIES_RESOLVED",
            severity=Severity.BLOCK,
            passed=False,
            message=f"Invoice {invoice.id} has {len(pending)} unresolved entity name(s)",
            evidence={"invoice_id": invoice.id, "raw_names": pending},
        )
    return CheckResult(
        check_id="R2_ENTITIES_RESOLVED",
        severity=Severity.INFO,
        passed=True,
        message=f"Invoice {invoice.id} has no unresolved entity names",
        evidence={"invoice_id": invoice.id},
    )


def check_r3_splits_balanced(invoice: Invoice, tolerance: Decimal = AMOUNT_TOLERANCE) -> CheckResult:
    """R3: Every split attribution adds up to its line item amount."""
    unbalanced = []
    for item in invoice.line_items:
        if item.entity is None or item.entity.kind != AttributionKind.SPLIT:
            continue
        shares_total = sum((s.share for s in item.entity.shares), Decimal("0"))
        if not amounts_match(shares_total, item.amount, tolerance):
            unbalanced.append({
                "line_item_id": item.id,
                "amount": str(item.amount),
                "shares_total": str(shares_total),
            })

    if unbalanced:
        return CheckResult(
            check_id="R3_SPLITS_BALANCED",
            severity=Severity.BLOCK,
            passed=False,
            message=f"Invoice {invoice.id} has {len(unbalanced)} unbalanced split(s)",
            evidence={"invoice_id": invoice.id, "items": unbalanced},
        )
    return CheckResult(
        check_id="R3_SPLITS_BALANCED",
        severity=Severity.INFO,
        passed=True,
        message=f"Invoice {invoice.id} splits are balanced",
        evidence={"invoice_id": invoice.id},
    )


def check_r4_targets_known(invoice: Invoice, categories: CategoryRegistry) -> CheckResult:
    """R4: Every reclassification target is a registered category."""
    unknown = sorted({
        target for target in (effective_target(item) for item in invoice.line_items)
        if target is not None and categories.get_by_slug(target) is None
    })
    if unknown:
        return CheckResult(
            check_id="R4_TARGETS_KNOWN",
            severity=Severity.BLOCK,
            passed=False,
            message=f"Invoice {invoice.id} targets unknown categories: {unknown}",
            evidence={"invoice_id": invoice.id, "categories": unknown},
        )
    return CheckResult(
        check_id="R4_TARGETS_KNOWN",
        severity=Severity.INFO,
        passed=True,
        message=f"Invoice {invoice.id} reclassification targets are registered",
        evidence={"invoice_id": invoice.id},
    )


def check_r5_reclassification(summary: ReclassificationSummary) -> CheckResult:
    """R5: Report what approval will move (informational)."""
    return CheckResult(
        check_id="R5_RECLASSIFICATION",
        severity=Severity.INFO,
        passed=True,
        message=(
            f"{summary.moved_count} item(s) will move to {len(summary.groups)} categor"
            f"{'y' if len(summary.groups) == 1 else 'ies'}; "
            f"{summary.remaining_count} item(s) stay"
        ),
        evidence={
            "groups": {g.category: str(g.subtotal) for g in summary.groups},
            "remaining_total": str(summary.remaining_total),
        },
    )


# =============================================================================
# Review
# =============================================================================

def review_invoice(
    invoice: Invoice,
    categories: Optional[CategoryRegistry] = None,
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> ReviewReport:
    """Run all review checks and return a report.

    Args:
        invoice: Invoice to review
        categories: Registry for target validation (R4 skipped when omitted)
        tolerance: Amount tolerance for sum comparisons

    Returns:
        ReviewReport with status, checks and the reclassification preview
    """
    summary = summarize(invoice, tolerance)

    checks = [
        check_r1_line_sum(invoice, tolerance),
        check_r2_entities_resolved(invoice),
        check_r3_splits_balanced(invoice, tolerance),
    ]
    if categories is not None:
        checks.append(check_r4_targets_known(invoice, categories))
    checks.append(check_r5_reclassification(summary))

    failed = [c for c in checks if not c.passed]
    if any(c.severity == Severity.BLOCK for c in failed):
        status = CheckStatus.FAIL
    elif any(c.severity == Severity.WARN for c in failed):
        status = CheckStatus.WARN
    else:
        status = CheckStatus.PASS

    return ReviewReport(
        invoice_id=invoice.id,
        status=status,
        checks=[c.to_dict() for c in checks],
        summary={
            "status": status.value,
            "total_checks": len(checks),
            "passed_checks": sum(1 for c in checks if c.passed),
            "blocking_issues": sum(1 for c in failed if c.severity == Severity.BLOCK),
            "warnings": sum(1 for c in failed if c.severity == Severity.WARN),
        },
        reclassification=summary,
    )


def format_review(report: ReviewReport) -> str:
    """Human-readable review report."""
    lines = ["=" * 60, f"Invoice Review: {report.invoice_id}", "=" * 60]
    lines.append(f"Status: {report.status.value}")
    lines.append("")

    for check in report.checks:
        mark = "✓" if check["passed"] else "✗"
        lines.append(f"{mark} [{check['severity']}] {check['check_id']}: {check['message']}")

    summary = report.reclassification
    if summary and summary.groups:
        lines.append("")
        lines.append("Reclassification:")
        for group in summary.groups:
            lines.append(f"  → {group.category}: {group.item_count} item(s), {group.subtotal}")
        lines.append(f"  Remaining: {summary.remaining_count} item(s), {summary.remaining_total}")

    lines.append("=" * 60)
    return "\n".join(lines)
