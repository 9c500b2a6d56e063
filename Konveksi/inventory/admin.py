# -*- coding: utf-8 -*-
"""Django admin registrations for Inventory app."""
from django.contrib import admin, messages

from . import models
from .purchasing import set_purchase_status


@admin.register(models.Material)
class MaterialAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "unit", "quantity_on_hand", "safety_stock", "price")
    list_filter = ("unit",)
    search_fields = ("name", "code")
    # Written by the ledger only
    readonly_fields = ("quantity_on_hand", "created_at", "updated_at")


@admin.register(models.Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "base_material", "created_at", "updated_at")
    search_fields = ("name", "code", "description")
    autocomplete_fields = ("base_material",)
    readonly_fields = ("created_at", "updated_at")


@admin.register(models.MaterialLedgerEntry)
class MaterialLedgerEntryAdmin(admin.ModelAdmin):
    """Append-only: visible in the admin, never editable."""
    list_display = ("created_at", "material", "quantity_delta", "source", "reference_number", "order", "created_by")
    list_filter = ("source", "material")
    search_fields = ("reference_number", "notes", "material__name", "order__order_number")
    date_hierarchy = "created_at"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.action(description="Mark selected purchases as received")
def mark_received(modeladmin, request, queryset):
    for purchase in queryset:
        set_purchase_status(purchase.pk, models.PurchaseLog.Status.RECEIVED, user=request.user)
    messages.success(request, f"{queryset.count()} purchases marked as received.")


@admin.register(models.PurchaseLog)
class PurchaseLogAdmin(admin.ModelAdmin):
    list_display = ("material", "quantity", "unit", "unit_price", "supplier", "status", "purchased_at")
    list_filter = ("status", "supplier")
    search_fields = ("material__name", "supplier", "notes")
    autocomplete_fields = ("material",)
    # Status moves stock, so it changes through set_purchase_status only
    readonly_fields = ("status", "received_at", "created_at", "updated_at")
    actions = [mark_received]
