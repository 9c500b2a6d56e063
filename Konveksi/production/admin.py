from django.contrib import admin

from .models import ProgressBatch, ProgressEntry, ProgressPhoto


class ReadOnlyAdminMixin:
    """Progress rows are immutable; the admin only displays them."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ProgressEntryInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = ProgressEntry
    fk_name = "batch"
    extra = 0
    fields = ("line_item", "entry_kind", "pcs_finished", "fabric_used", "quality_score", "corrects")
    readonly_fields = fields


class ProgressPhotoInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = ProgressPhoto
    extra = 0
    fields = ("url", "thumbnail_url", "caption")
    readonly_fields = fields


@admin.register(ProgressBatch)
class ProgressBatchAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "order", "kind", "worker_name", "submitted_by", "client_reference", "created_at")
    list_filter = ("kind", "created_at")
    search_fields = ("order__order_number", "worker_name", "client_reference")
    inlines = [ProgressEntryInline]


@admin.register(ProgressEntry)
class ProgressEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "order", "line_item", "entry_kind", "pcs_finished", "fabric_used", "quality_score", "created_at")
    list_filter = ("entry_kind", "created_at")
    search_fields = ("order__order_number", "line_item__product__name")
    inlines = [ProgressPhotoInline]
