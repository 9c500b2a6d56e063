"""Public order links: tokens that let workers without an account report progress."""
from __future__ import annotations

import logging
import secrets
from datetime import timedelta

import qrcode
from qrcode.image.svg import SvgPathImage

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from utils.exceptions import OrderCancelled, OrderLinkNotFound, OrderNotFound

from .models import Order, OrderLink

logger = logging.getLogger(__name__)


def _default_ttl_days():
    return getattr(settings, "KONVEKSI_ORDER_LINK_TTL_DAYS", 30)


def generate_token() -> str:
    return secrets.token_urlsafe(24)


def create_order_link(order_id, user=None, ttl_days=None) -> OrderLink:
    """
    Issue a fresh link for an order, deactivating any previous one.

    ``ttl_days`` of 0 or None (with the setting also None) means the link never
    expires.
    """
    if ttl_days is None:
        ttl_days = _default_ttl_days()

    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(pk=order_id, is_active=True)
        except (Order.DoesNotExist, ValueError, TypeError):
            raise OrderNotFound(order_id)
        if order.status == Order.Status.CANCELLED:
            raise OrderCancelled(order.pk)

        OrderLink.objects.filter(order=order, is_active=True).update(is_active=False)
        token = generate_token()
        while OrderLink.objects.filter(token=token).exists():
            token = generate_token()
        link = OrderLink.objects.create(
            order=order,
            token=token,
            expires_at=timezone.now() + timedelta(days=ttl_days) if ttl_days else None,
            created_by=user if getattr(user, "is_authenticated", False) else None,
        )
    logger.info("order link issued for %s (expires %s)", order.order_number, link.expires_at)
    return link


def resolve_order_link(token: str) -> OrderLink:
    """Return the active, unexpired link for ``token`` or raise ``OrderLinkNotFound``."""
    token = (token or "").strip()
    if not token:
        raise OrderLinkNotFound()
    link = OrderLink.objects.select_related("order").filter(token=token).first()
    if link is None or not link.is_usable or not link.order.is_active:
        raise OrderLinkNotFound()
    return link


def deactivate_expired_links(now=None) -> int:
    now = now or timezone.now()
    count = OrderLink.objects.filter(is_active=True, expires_at__lte=now).update(is_active=False)
    if count:
        logger.info("deactivated %s expired order links", count)
    return count


def render_qr_svg(data: str) -> bytes:
    """Render ``data`` as an SVG QR code (no Pillow needed)."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(image_factory=SvgPathImage)
    return img.to_string()
