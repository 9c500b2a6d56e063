import uuid

from django.conf import settings
from django.db import models
from django.db.models import CheckConstraint, Q
from django.utils import timezone


class Order(models.Model):
    class Status(models.TextChoices):
        CREATED = 'created', 'Created'
        NEED_MATERIAL = 'need_material', 'Need material'
        CONFIRMED = 'confirmed', 'Confirmed'
        PROCESSING = 'processing', 'Processing'
        COMPLETED = 'completed', 'Completed'
        SHIPPED = 'shipped', 'Shipped'
        DELIVERED = 'delivered', 'Delivered'
        CANCELLED = 'cancelled', 'Cancelled'

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    # Assigned on first save when left blank: ORD-YYYYMMDD-XXXX
    order_number = models.CharField(max_length=32, unique=True, blank=True)
    customer_name = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    # Written only by orders.state_machine
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.CREATED)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    due_date = models.DateField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    # Caches over line items; rebuilt by production.completion
    target_pcs = models.PositiveIntegerField(default=0)
    completed_pcs = models.PositiveIntegerField(default=0)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='order_status_idx'),
            models.Index(fields=['due_date'], name='order_due_date_idx'),
        ]

    @staticmethod
    def generate_order_number() -> str:
        stamp = timezone.localdate().strftime('%Y%m%d')
        return f"ORD-{stamp}-{uuid.uuid4().hex[:4].upper()}"

    def save(self, *args, **kwargs):
        """Assign an order number once on initial save."""
        if not self.order_number:
            candidate = self.generate_order_number()
            while Order.objects.filter(order_number=candidate).exists():
                candidate = self.generate_order_number()
            self.order_number = candidate
        return super().save(*args, **kwargs)

    @property
    def is_terminal(self) -> bool:
        return self.status in (self.Status.DELIVERED, self.Status.CANCELLED)

    def __str__(self):
        return f"{self.order_number} - {self.customer_name}"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey('inventory.Product', on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField(default=1)

    # Caches over production.ProgressEntry
    completed_qty = models.PositiveIntegerField(default=0)
    is_completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        unique_together = ('order', 'product')
        ordering = ['id']
        verbose_name = "OrderItem"
        verbose_name_plural = "OrderItems"
        constraints = [
            CheckConstraint(condition=Q(quantity__gt=0), name="order_item_quantity_gt_0"),
            CheckConstraint(condition=Q(completed_qty__lte=models.F('quantity')), name="order_item_completed_lte_quantity"),
        ]

    @property
    def remaining_qty(self) -> int:
        return max(self.quantity - self.completed_qty, 0)

    def __str__(self):
        return f"{self.order_id} - {self.product} x{self.quantity}"


class OrderStatusChange(models.Model):
    """Audit row for every status change, manual or derived from progress."""

    order = models.ForeignKey(Order, related_name="status_changes", on_delete=models.CASCADE)
    old_status = models.CharField(max_length=20, choices=Order.Status.choices)
    new_status = models.CharField(max_length=20, choices=Order.Status.choices)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='order_status_changes',
    )
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.order_id}: {self.old_status} -> {self.new_status}"


class OrderLink(models.Model):
    """Shareable token letting workers without an account report progress on one order."""

    order = models.ForeignKey(Order, related_name="links", on_delete=models.CASCADE)
    token = models.CharField(max_length=64, unique=True)
    is_active = models.BooleanField(default=True)
    expires_at = models.DateTimeField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='order_links',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['order'],
                condition=Q(is_active=True),
                name='order_link_one_active_per_order',
            ),
        ]

    def is_expired(self, now=None) -> bool:
        if self.expires_at is None:
            return False
        return (now or timezone.now()) >= self.expires_at

    @property
    def is_usable(self) -> bool:
        return self.is_active and not self.is_expired()

    def __str__(self):
        return f"{self.order.order_number} link"
