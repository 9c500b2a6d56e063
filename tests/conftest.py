"""
Shared fixtures: users with roles, materials, products and orders.

Orders are created the way staff create them: line items first, then the
target cache refreshed so the order starts consistent with its items.
"""
from decimal import Decimal

import pytest
from django.test import Client

from inventory import ledger
from inventory.models import Material, Product
from orders.models import Order, OrderItem


@pytest.fixture
def manager(django_user_model):
    return django_user_model.objects.create_user(username="manager", password="pw", role="manager")


@pytest.fixture
def tailor(django_user_model):
    return django_user_model.objects.create_user(username="tailor", password="pw", role="tailor", full_name="Siti")


@pytest.fixture
def manager_client(db, manager):
    c = Client()
    c.force_login(manager)
    return c


@pytest.fixture
def tailor_client(db, tailor):
    c = Client()
    c.force_login(tailor)
    return c


@pytest.fixture
def make_material(db):
    def _make(name="Cotton Combed 30s", stock=None, safety_stock="0", price=None, unit="meter"):
        material = Material.objects.create(
            name=name, unit=unit, safety_stock=Decimal(safety_stock), price=price
        )
        if stock is not None:
            ledger.record_manual_movement(material, Decimal(stock), notes="opening stock")
            material.refresh_from_db()
        return material

    return _make


@pytest.fixture
def make_product(db):
    def _make(name="Polo shirt", base_material=None):
        return Product.objects.create(name=name, base_material=base_material)

    return _make


@pytest.fixture
def make_order(db):
    """``make_order([(product, qty), ...], status=...)``"""

    def _make(items, status=Order.Status.CREATED, **fields):
        order = Order.objects.create(customer_name=fields.pop("customer_name", "Toko Maju"), **fields)
        for product, qty in items:
            OrderItem.objects.create(order=order, product=product, quantity=qty)
        order.target_pcs = sum(qty for _, qty in items)
        order.status = status
        order.save(update_fields=["target_pcs", "status"])
        return order

    return _make


@pytest.fixture
def fabric(make_material):
    return make_material(name="Cotton", stock="100")


@pytest.fixture
def single_item_order(make_product, make_order, fabric):
    product = make_product(name="Polo shirt", base_material=fabric)
    return make_order([(product, 10)])
