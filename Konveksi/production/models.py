# -*- coding: utf-8 -*-
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import CheckConstraint, Q
from django.utils.translation import gettext_lazy as _


class ProgressBatch(models.Model):
    """One submission event: the entries it holds were written atomically."""

    class Kind(models.TextChoices):
        INDIVIDUAL = "individual", _("Per product")
        AGGREGATED = "aggregated", _("Aggregated")

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="progress_batches",
        verbose_name=_("Order"),
    )
    kind = models.CharField(max_length=20, choices=Kind.choices, default=Kind.INDIVIDUAL, verbose_name=_("Kind"))
    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="progress_batches",
        verbose_name=_("Submitted by"),
    )
    order_link = models.ForeignKey(
        "orders.OrderLink",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="progress_batches",
        verbose_name=_("Via link"),
    )
    worker_name = models.CharField(max_length=100, blank=True, verbose_name=_("Worker"))
    note = models.TextField(blank=True, verbose_name=_("Note"))
    # Caller-supplied idempotency key
    client_reference = models.CharField(max_length=64, null=True, blank=True, verbose_name=_("Client reference"))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Submitted at"))

    class Meta:
        verbose_name = _("Progress submission")
        verbose_name_plural = _("Progress submissions")
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "client_reference"],
                condition=Q(client_reference__isnull=False),
                name="progress_batch_unique_client_reference",
            ),
        ]

    def __str__(self):
        who = self.worker_name or getattr(self.submitted_by, "username", None) or "—"
        return f"{self.order_id} | {self.get_kind_display()} | {who}"


class ProgressEntry(models.Model):
    """
    Pieces finished (and fabric used) for one line item in one submission.

    Entries are immutable. A correction is a new entry with
    ``entry_kind=correction``, non-positive ``pcs_finished`` and ``corrects``
    pointing at the entry it reverses.
    """

    class EntryKind(models.TextChoices):
        PROGRESS = "progress", _("Progress")
        CORRECTION = "correction", _("Correction")

    batch = models.ForeignKey(ProgressBatch, on_delete=models.PROTECT, related_name="entries", verbose_name=_("Submission"))
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="progress_entries",
        verbose_name=_("Order"),
    )
    line_item = models.ForeignKey(
        "orders.OrderItem",
        on_delete=models.PROTECT,
        related_name="progress_entries",
        verbose_name=_("Line item"),
    )
    entry_kind = models.CharField(
        max_length=20, choices=EntryKind.choices, default=EntryKind.PROGRESS, verbose_name=_("Entry kind")
    )
    corrects = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="correction",
        verbose_name=_("Corrects"),
    )

    pcs_finished = models.IntegerField(default=0, verbose_name=_("Pieces finished"))
    fabric_used = models.DecimalField(
        max_digits=12, decimal_places=3, null=True, blank=True, verbose_name=_("Fabric used")
    )
    quality_score = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        verbose_name=_("Quality score"),
    )
    quality_notes = models.TextField(blank=True, verbose_name=_("Quality notes"))
    challenges = models.TextField(blank=True, verbose_name=_("Challenges"))

    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="progress_entries",
        verbose_name=_("Submitted by"),
    )
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Recorded at"))

    class Meta:
        verbose_name = _("Progress entry")
        verbose_name_plural = _("Progress entries")
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["order", "created_at"], name="progress_order_created_idx"),
            models.Index(fields=["line_item"], name="progress_line_item_idx"),
        ]
        constraints = [
            CheckConstraint(
                condition=(Q(entry_kind="progress") & Q(pcs_finished__gte=0))
                | (Q(entry_kind="correction") & Q(pcs_finished__lte=0)),
                name="progress_entry_pcs_sign_matches_kind",
            ),
            CheckConstraint(
                condition=Q(fabric_used__isnull=True) | Q(fabric_used__gte=0),
                name="progress_entry_fabric_gte_0_or_null",
            ),
            CheckConstraint(
                condition=Q(quality_score__isnull=True) | Q(quality_score__lte=100),
                name="progress_entry_quality_lte_100",
            ),
        ]

    @property
    def is_correction(self) -> bool:
        return self.entry_kind == self.EntryKind.CORRECTION

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValidationError(_("Progress entries are immutable; record a correction instead."))
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(_("Progress entries cannot be deleted; record a correction instead."))

    def __str__(self):
        return f"{self.line_item} | {self.pcs_finished:+d} pcs | {self.get_entry_kind_display()}"


class ProgressPhoto(models.Model):
    """Reference to an uploaded photo; bytes live in external storage."""

    entry = models.ForeignKey(ProgressEntry, on_delete=models.CASCADE, related_name="photos", verbose_name=_("Entry"))
    url = models.URLField(max_length=500, verbose_name=_("Photo URL"))
    thumbnail_url = models.URLField(max_length=500, blank=True, verbose_name=_("Thumbnail URL"))
    caption = models.CharField(max_length=255, blank=True, verbose_name=_("Caption"))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Progress photo")
        verbose_name_plural = _("Progress photos")
        ordering = ["id"]

    def __str__(self):
        return self.caption or self.url
