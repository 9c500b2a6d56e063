"""Submission payloads accepted by the progress coordinator.

Two recording paths reach the coordinator: per-product submissions (one row
per line item) and aggregated submissions (a single piece count for the whole
order). ``normalize_submission`` turns either into ``ProductSubmission`` rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Union


@dataclass
class PhotoRef:
    url: str
    thumbnail_url: str = ""
    caption: str = ""


@dataclass
class ProductSubmission:
    line_item_id: int
    pcs_finished: int = 0
    fabric_used: Optional[Decimal] = None
    quality_score: Optional[int] = None
    quality_notes: str = ""
    challenges: str = ""
    photos: List[PhotoRef] = field(default_factory=list)
    # Overrides the product's base material for consumption
    material_id: Optional[int] = None


@dataclass
class SubmissionMeta:
    user: object = None
    worker_name: str = ""
    note: str = ""
    client_reference: Optional[str] = None
    kind: str = "individual"


@dataclass
class PerProductSubmission:
    items: List[ProductSubmission]


@dataclass
class AggregatedSubmission:
    pcs_finished: int
    note: str = ""
    fabric_used: Optional[Decimal] = None
    photos: List[PhotoRef] = field(default_factory=list)
    material_id: Optional[int] = None


Submission = Union[PerProductSubmission, AggregatedSubmission]


def distribute_pieces(pcs: int, line_items: Sequence) -> List[tuple]:
    """
    Spread ``pcs`` over incomplete line items in id order.

    Each item is filled up to its remaining quantity. Pieces left after every
    item is full stay on the last incomplete item (or the last item) so the
    coordinator reports the overflow instead of dropping it.
    Returns ``[(line_item, pcs), ...]`` with only non-zero shares.
    """
    ordered = sorted(line_items, key=lambda li: li.pk)
    open_items = [li for li in ordered if li.completed_qty < li.quantity]
    targets = open_items or ordered[-1:]
    shares = []
    left = pcs
    for li in targets:
        if left <= 0:
            break
        take = min(left, max(li.quantity - li.completed_qty, 0))
        if take > 0:
            shares.append([li, take])
            left -= take
    if left > 0 and targets:
        if shares and shares[-1][0] is targets[-1]:
            shares[-1][1] += left
        else:
            shares.append([targets[-1], left])
    return [tuple(s) for s in shares]


def normalize_submission(payload: Submission, line_items: Sequence) -> List[ProductSubmission]:
    """Turn either submission variant into per-line-item rows."""
    if isinstance(payload, PerProductSubmission):
        return list(payload.items)
    if not isinstance(payload, AggregatedSubmission):
        raise TypeError(f"unsupported submission payload: {type(payload).__name__}")

    shares = distribute_pieces(payload.pcs_finished, line_items)
    rows = [ProductSubmission(line_item_id=li.pk, pcs_finished=pcs) for li, pcs in shares]

    has_fabric = payload.fabric_used is not None and payload.fabric_used > 0
    if not rows and (has_fabric or payload.photos) and line_items:
        first = sorted(line_items, key=lambda li: li.pk)[0]
        rows.append(ProductSubmission(line_item_id=first.pk, pcs_finished=0))
    if rows:
        head = rows[0]
        head.fabric_used = payload.fabric_used
        head.photos = list(payload.photos)
        head.material_id = payload.material_id
        head.quality_notes = payload.note
    return rows
