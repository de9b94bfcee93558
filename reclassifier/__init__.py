"""Line-Item Reclassifier - per-item category suggestions and confirmations.

Usage:
    from reclassifier import LineItemReclassifier, effective_target, summarize

    reclassifier = LineItemReclassifier(db_path="reconciliation.db")
    reclassifier.confirm(item_id, "stabling")   # move on approval
    reclassifier.confirm(other_id, None)        # explicitly keep
    preview = reclassifier.preview(invoice_id)
"""

from reclassifier.models import ReclassifiedItem, ReclassificationGroup, ReclassificationSummary
from reclassifier.engine import LineItemReclassifier, effective_target, summarize

__all__ = [
    # Models
    "ReclassifiedItem",
    "ReclassificationGroup",
    "ReclassificationSummary",
    # Engine
    "LineItemReclassifier",
    "effective_target",
    "summarize",
]
