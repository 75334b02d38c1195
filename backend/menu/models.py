from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class MenuItem(models.Model):
    class Status(models.TextChoices):
        AVAILABLE = "available", _("Available")
        UNAVAILABLE = "unavailable", _("Unavailable")

    name = models.CharField(max_length=200, help_text=_("Name shown on the menu."))
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10, decimal_places=2, help_text=_("Base price before modifiers.")
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.AVAILABLE, db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Menu Item")
        verbose_name_plural = _("Menu Items")
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def is_available(self):
        return self.status == self.Status.AVAILABLE


class ModifierGroup(models.Model):
    menu_item = models.ForeignKey(
        MenuItem, on_delete=models.CASCADE, related_name="modifier_groups"
    )
    name = models.CharField(
        max_length=100, help_text=_("Customer-facing name, e.g., 'Choose your size'")
    )

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.menu_item.name} - {self.name}"


class ModifierOption(models.Model):
    group = models.ForeignKey(
        ModifierGroup, on_delete=models.CASCADE, related_name="options"
    )
    name = models.CharField(max_length=100)
    price_adjustment = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("The amount to add or subtract from the base item price."),
    )
    is_available = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        unique_together = ("group", "name")

    def __str__(self):
        return f"{self.group.name} - {self.name}"
