from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from inventory.conf import get_setting
from inventory.utils import normalize_sku


def default_low_stock_threshold():
    return get_setting("DEFAULT_LOW_STOCK_THRESHOLD")


class ItemCondition(models.TextChoices):
    NEW_ITEM = "NewItem", "New"
    USED_LIKE_NEW = "UsedLikeNew", "Used - Like New"
    USED_VERY_GOOD = "UsedVeryGood", "Used - Very Good"
    USED_GOOD = "UsedGood", "Used - Good"
    USED_ACCEPTABLE = "UsedAcceptable", "Used - Acceptable"


class PrepType(models.TextChoices):
    NONE = "NONE", "None"
    POLYBAGGING = "Polybagging", "Polybagging"
    BUBBLE_WRAP = "Bubble wrap", "Bubble wrap"
    TAPING = "Taping", "Taping"
    LABELING = "Labeling", "Labeling"
    BLACK_SHRINK_WRAP = "Black shrink wrap", "Black shrink wrap"


class StockUnit(models.Model):
    """
    One row per SKU: the authoritative available/faulty quantities.

    Quantities are only changed through inventory.services.stock_ledger.StockLedger.
    Units are never deleted, only deactivated.
    """

    sku = models.CharField(max_length=100, unique=True, db_index=True)
    name = models.CharField(max_length=255)
    barcode = models.CharField(max_length=100, blank=True, db_index=True)
    asin = models.CharField(max_length=20, blank=True, db_index=True)
    fnsku = models.CharField(max_length=20, blank=True, db_index=True)
    product_id = models.CharField(max_length=100, blank=True)
    condition = models.CharField(max_length=20, choices=ItemCondition.choices, default=ItemCondition.NEW_ITEM)
    prep_type = models.CharField(max_length=30, choices=PrepType.choices, default=PrepType.NONE)
    available_qty = models.PositiveIntegerField(default=0)
    faulty_qty = models.PositiveIntegerField(default=0)
    unit_weight = models.DecimalField(
        max_digits=10, decimal_places=3, default=Decimal("0.000"), validators=[MinValueValidator(0)]
    )
    unit_cost = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"), validators=[MinValueValidator(0)]
    )
    selling_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00"), validators=[MinValueValidator(0)]
    )
    supplier = models.CharField(max_length=200, blank=True)
    category = models.CharField(max_length=100, blank=True)
    low_stock_threshold = models.PositiveIntegerField(default=default_low_stock_threshold)
    is_active = models.BooleanField(default=True)
    last_restocked = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="created_stock_units"
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="updated_stock_units"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "stock_units"
        verbose_name = "Stock Unit"
        verbose_name_plural = "Stock Units"
        ordering = ["sku"]
        indexes = [
            models.Index(fields=["is_active"]),
            models.Index(fields=["category"]),
            models.Index(fields=["supplier"]),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(available_qty__gte=0), name="stock_unit_available_qty_gte_0"),
            models.CheckConstraint(condition=models.Q(faulty_qty__gte=0), name="stock_unit_faulty_qty_gte_0"),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name} ({self.available_qty} available)"

    def save(self, *args, **kwargs):
        self.sku = normalize_sku(self.sku)
        self.asin = (self.asin or "").strip().upper()
        self.fnsku = (self.fnsku or "").strip().upper()
        super().save(*args, **kwargs)

    @property
    def total_qty(self):
        return self.available_qty + self.faulty_qty

    @property
    def is_low_stock(self):
        return self.available_qty <= self.low_stock_threshold

    def as_catalog_entry(self):
        """Read-only snapshot used to populate shipment item fields."""
        return {
            "sku": self.sku,
            "name": self.name,
            "product_id": self.product_id,
            "asin": self.asin,
            "fnsku": self.fnsku,
            "condition": self.condition,
            "prep_type": self.prep_type,
            "unit_weight": self.unit_weight,
            "unit_cost": self.unit_cost,
            "available_qty": self.available_qty,
        }


class MovementType(models.TextChoices):
    REGISTER = "register", "Register"
    RESTOCK = "restock", "Restock"
    SET = "set", "Stock Count"
    RESERVE = "reserve", "Shipment Reservation"
    RELEASE = "release", "Shipment Release"
    ADJUSTMENT = "adjustment", "Manual Adjustment"
    DEFECT = "defect", "Defect Report"


class QuantityField(models.TextChoices):
    AVAILABLE = "available_qty", "Available"
    FAULTY = "faulty_qty", "Faulty"


class StockMovement(models.Model):
    """Append-only ledger entry written for every quantity change."""

    stock_unit = models.ForeignKey(StockUnit, on_delete=models.PROTECT, related_name="movements")
    sku = models.CharField(max_length=100, db_index=True)
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    field = models.CharField(max_length=20, choices=QuantityField.choices, default=QuantityField.AVAILABLE)
    quantity_delta = models.IntegerField()
    available_after = models.PositiveIntegerField()
    faulty_after = models.PositiveIntegerField()
    reference = models.CharField(max_length=100, blank=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="stock_movements"
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "stock_movements"
        verbose_name = "Stock Movement"
        verbose_name_plural = "Stock Movements"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["-created_at"]),
            models.Index(fields=["movement_type"]),
            models.Index(fields=["sku", "-created_at"]),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity_delta:+d} {self.sku} ({self.reference or 'manual'})"
