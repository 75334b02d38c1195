"""
Catalog lookups used when pricing orders.
"""
from decimal import Decimal

import pytest

from menu.catalog import CatalogService, MenuItemSnapshot


@pytest.mark.django_db
class TestCatalogService:
    def test_menu_item_snapshot(self, salmon):
        snapshot = CatalogService.get_menu_item(salmon.id)

        assert isinstance(snapshot, MenuItemSnapshot)
        assert snapshot.name == "Grilled Salmon"
        assert snapshot.price == Decimal("24.99")
        assert snapshot.is_available is True

    def test_unavailable_item_is_reported(self, sold_out_item):
        assert CatalogService.get_menu_item(sold_out_item.id).is_available is False

    def test_unknown_or_malformed_item_id_returns_none(self, db):
        assert CatalogService.get_menu_item(999999) is None
        assert CatalogService.get_menu_item("abc") is None
        assert CatalogService.get_menu_item(None) is None

    def test_modifier_option_snapshot_knows_its_menu_item(self, salmon, salmon_sides):
        snapshot = CatalogService.get_modifier_option(salmon_sides["fries"].id)

        assert snapshot.menu_item_id == salmon.id
        assert snapshot.group_id == salmon_sides["fries"].group_id
        assert snapshot.price_adjustment == Decimal("1.50")

    def test_snapshot_is_frozen(self, salmon):
        snapshot = CatalogService.get_menu_item(salmon.id)

        with pytest.raises(Exception):
            snapshot.price = Decimal("0.01")
