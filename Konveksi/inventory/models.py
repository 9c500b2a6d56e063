# -*- coding: utf-8 -*-
"""
Inventory domain models for the garment workshop.

- Material: fabric and trims, with a cached on-hand quantity.
- Product: sellable garments, each optionally backed by one base material.
- MaterialLedgerEntry: append-only signed stock movements (the source of truth).
- PurchaseLog: purchasing records that replenish stock once received.

Design highlights:
- ``Material.quantity_on_hand`` is a cache over the ledger; only
  ``inventory.ledger`` writes it.
- Ledger rows cannot be updated or deleted; corrections are new rows.
- Check constraints guard quantities and prices at the database level.
"""
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, CheckConstraint
from django.utils.translation import gettext_lazy as _


# ---------------------------
# Core catalog / master data
# ---------------------------
class Material(models.Model):
    """
    Raw input stored in the workshop. ``quantity_on_hand`` is the sum of the
    material's ledger deltas; ``safety_stock`` drives restock alerts.
    """
    name = models.CharField(max_length=100, unique=True, verbose_name=_("Material name"))
    code = models.CharField(max_length=50, blank=True, verbose_name=_("Code"))
    unit = models.CharField(max_length=20, default="meter", verbose_name=_("Unit"))

    quantity_on_hand = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=Decimal("0"),
        verbose_name=_("Quantity on hand"),
        help_text=_("Cached sum of the ledger; do not edit by hand."),
    )
    safety_stock = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=Decimal("0"),
        verbose_name=_("Safety stock"),
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        blank=True,
        null=True,
        verbose_name=_("Price per unit"),
    )

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated"))

    class Meta:
        verbose_name = _("Material")
        verbose_name_plural = _("Materials")
        ordering = ["name"]
        indexes = [
            models.Index(fields=["name"], name="material_name_idx"),
            models.Index(fields=["code"], name="material_code_idx"),
        ]
        constraints = [
            CheckConstraint(condition=Q(safety_stock__gte=0), name="material_safety_stock_gte_0"),
            CheckConstraint(
                condition=Q(price__isnull=True) | Q(price__gte=0),
                name="material_price_gte_0_or_null",
            ),
        ]

    def is_below_safety_stock(self) -> bool:
        return (self.quantity_on_hand or 0) <= (self.safety_stock or 0)

    def __str__(self) -> str:
        return self.name


class Product(models.Model):
    name = models.CharField(max_length=100, unique=True, verbose_name=_("Product name"))
    code = models.CharField(max_length=50, blank=True, verbose_name=_("Code"))
    base_material = models.ForeignKey(
        "inventory.Material",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="products",
        verbose_name=_("Base material"),
        help_text=_("Fabric consumed when progress reports fabric usage."),
    )
    description = models.TextField(blank=True, verbose_name=_("Description"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated"))

    class Meta:
        verbose_name = _("Product")
        verbose_name_plural = _("Products")
        ordering = ["name"]
        indexes = [
            models.Index(fields=["name"], name="product_name_idx"),
        ]

    def __str__(self) -> str:
        return self.name


# ---------------------------
# Stock movements
# ---------------------------
class MaterialLedgerEntry(models.Model):
    """
    One signed stock movement. Positive deltas are inbound, negative outbound.

    Rows are immutable: ``save()`` on an existing row and ``delete()`` raise
    ``ValidationError``. Write through ``inventory.ledger.append_entry``.
    """

    class Source(models.TextChoices):
        MANUAL = "manual", _("Manual")
        PURCHASE = "purchase", _("Purchase")
        PRODUCTION = "production", _("Production")
        ADJUSTMENT = "adjustment", _("Adjustment")

    material = models.ForeignKey(
        "inventory.Material",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
        verbose_name=_("Material"),
    )
    quantity_delta = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        verbose_name=_("Quantity change"),
    )
    source = models.CharField(max_length=20, choices=Source.choices, verbose_name=_("Source"))

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        verbose_name=_("Order"),
    )
    line_item = models.ForeignKey(
        "orders.OrderItem",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        verbose_name=_("Line item"),
    )
    progress_entry = models.ForeignKey(
        "production.ProgressEntry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        verbose_name=_("Progress entry"),
    )
    purchase = models.ForeignKey(
        "inventory.PurchaseLog",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        verbose_name=_("Purchase"),
    )

    unit_price = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, verbose_name=_("Unit price")
    )
    total_value = models.DecimalField(
        max_digits=16, decimal_places=2, null=True, blank=True, verbose_name=_("Total value")
    )
    reference_number = models.CharField(max_length=64, blank=True, verbose_name=_("Reference"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="ledger_entries",
        verbose_name=_("Recorded by"),
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True, verbose_name=_("Recorded at"))

    class Meta:
        verbose_name = _("Material ledger entry")
        verbose_name_plural = _("Material ledger")
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["material", "created_at"], name="ledger_material_created_idx"),
            models.Index(fields=["reference_number"], name="ledger_reference_idx"),
            models.Index(fields=["source"], name="ledger_source_idx"),
        ]
        constraints = [
            CheckConstraint(condition=~Q(quantity_delta=0), name="ledger_delta_nonzero"),
        ]

    @property
    def movement_type(self) -> str:
        return "in" if self.quantity_delta > 0 else "out"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValidationError(_("Ledger entries are append-only and cannot be modified."))
        if self.unit_price is not None and self.total_value is None:
            self.total_value = (abs(self.quantity_delta) * self.unit_price).quantize(Decimal("0.01"))
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(_("Ledger entries are append-only and cannot be deleted."))

    def __str__(self) -> str:
        return f"{self.material} {self.quantity_delta:+} ({self.source})"


class PurchaseLog(models.Model):
    """Purchasing record; stock moves only while the purchase is ``received``."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        RECEIVED = "received", _("Received")
        CANCELLED = "cancelled", _("Cancelled")

    material = models.ForeignKey(
        "inventory.Material",
        on_delete=models.PROTECT,
        related_name="purchases",
        verbose_name=_("Material"),
    )
    quantity = models.DecimalField(max_digits=14, decimal_places=3, verbose_name=_("Quantity"))
    unit = models.CharField(max_length=20, blank=True, verbose_name=_("Unit"))
    unit_price = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, verbose_name=_("Unit price")
    )
    supplier = models.CharField(max_length=100, blank=True, verbose_name=_("Supplier"))
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        verbose_name=_("Status"),
    )
    purchased_at = models.DateField(null=True, blank=True, verbose_name=_("Purchase date"))
    received_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Received at"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated"))

    class Meta:
        verbose_name = _("Purchase")
        verbose_name_plural = _("Purchases")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="purchase_status_idx"),
            models.Index(fields=["material"], name="purchase_material_idx"),
        ]
        constraints = [
            CheckConstraint(condition=Q(quantity__gt=0), name="purchase_quantity_gt_0"),
        ]

    @property
    def reference_number(self) -> str:
        return f"PUR-{self.pk}"

    def __str__(self) -> str:
        return f"{self.material} × {self.quantity} ({self.get_status_display()})"


__all__ = [
    "Material",
    "MaterialLedgerEntry",
    "Product",
    "PurchaseLog",
]
