"""Cache reconciliation: rebuild derived figures from the entries they summarize."""
import logging
from dataclasses import dataclass, field
from typing import List

from django.db import transaction

from inventory.ledger import find_stock_drift, reconcile_material_stock
from inventory.models import Material
from orders.models import Order
from production.completion import find_completion_drift, reconcile_order_completion

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    fixed: bool
    orders_checked: int = 0
    materials_checked: int = 0
    drift: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "fixed": self.fixed,
            "orders_checked": self.orders_checked,
            "materials_checked": self.materials_checked,
            "drift_count": len(self.drift),
            "drift": self.drift,
        }


def reconcile_caches(fix: bool = True, user=None) -> ReconcileReport:
    """
    Compare every order/line-item completion cache and every material stock
    cache with the entries behind it. With ``fix`` the caches are rewritten
    (and order status re-derived); otherwise drift is only reported.
    """
    report = ReconcileReport(fixed=fix)

    for order_id in Order.objects.order_by("id").values_list("id", flat=True):
        report.orders_checked += 1
        if not fix:
            for err in find_completion_drift(order_id):
                logger.error("completion drift detected: %s", err.detail)
                report.drift.append(err.detail)
            continue
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            report.drift.extend(err.detail for err in reconcile_order_completion(order, user=user))

    materials = Material.objects.order_by("id")
    if fix:
        for material in materials:
            report.materials_checked += 1
            err = reconcile_material_stock(material)
            if err is not None:
                report.drift.append(err.detail)
    else:
        report.materials_checked = materials.count()
        for err in find_stock_drift(materials):
            logger.error("stock drift detected: %s", err.detail)
            report.drift.append(err.detail)

    logger.info(
        "reconciliation %s: %s orders, %s materials, %s drifted",
        "applied" if fix else "dry run", report.orders_checked, report.materials_checked, len(report.drift),
    )
    return report
