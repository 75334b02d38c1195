"""
Read-only view of the menu used when pricing an order.

Callers get frozen snapshots rather than model instances so prices captured
on an order cannot be affected by later catalog edits in the same request.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .models import MenuItem, ModifierOption


@dataclass(frozen=True)
class MenuItemSnapshot:
    id: int
    name: str
    price: Decimal
    is_available: bool


@dataclass(frozen=True)
class ModifierOptionSnapshot:
    id: int
    group_id: int
    menu_item_id: int
    name: str
    price_adjustment: Decimal
    is_available: bool


def _as_pk(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class CatalogService:
    @staticmethod
    def get_menu_item(menu_item_id) -> Optional[MenuItemSnapshot]:
        pk = _as_pk(menu_item_id)
        if pk is None:
            return None
        item = MenuItem.objects.filter(pk=pk).first()
        if item is None:
            return None
        return MenuItemSnapshot(
            id=item.pk,
            name=item.name,
            price=item.price,
            is_available=item.is_available,
        )

    @staticmethod
    def get_modifier_option(option_id) -> Optional[ModifierOptionSnapshot]:
        pk = _as_pk(option_id)
        if pk is None:
            return None
        option = (
            ModifierOption.objects.select_related("group")
            .filter(pk=pk)
            .first()
        )
        if option is None:
            return None
        return ModifierOptionSnapshot(
            id=option.pk,
            group_id=option.group_id,
            menu_item_id=option.group.menu_item_id,
            name=option.name,
            price_adjustment=option.price_adjustment,
            is_available=option.is_available,
        )
