from django.contrib import admin
from .models import Order, OrderItem, OrderLink, OrderStatusChange


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['completed_qty', 'is_completed', 'completed_at']


class OrderStatusChangeInline(admin.TabularInline):
    model = OrderStatusChange
    extra = 0
    can_delete = False
    readonly_fields = ['old_status', 'new_status', 'changed_by', 'reason', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer_name', 'status', 'priority', 'due_date', 'completed_pcs', 'target_pcs']
    list_filter = ['status', 'priority', 'is_active']
    search_fields = ['order_number', 'customer_name']
    # Status and caches are derived; change status through the status endpoint
    readonly_fields = ['status', 'target_pcs', 'completed_pcs']
    inlines = [OrderItemInline, OrderStatusChangeInline]


class OrderLinkAdmin(admin.ModelAdmin):
    list_display = ['order', 'token', 'is_active', 'expires_at', 'created_by', 'created_at']
    list_filter = ['is_active']
    search_fields = ['order__order_number', 'token']
    readonly_fields = ['token']


admin.site.register(Order, OrderAdmin)
admin.site.register(OrderLink, OrderLinkAdmin)
