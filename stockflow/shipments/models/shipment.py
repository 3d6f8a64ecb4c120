"""
Shipment model: an outbound consignment of boxes.
"""

import uuid
from decimal import Decimal
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.conf import settings
from django.utils import timezone

from inventory.conf import get_setting
from ..exceptions import StaleShipmentException
from .sequence import ShipmentSequence


class ShipmentStatus(models.TextChoices):
    """Shipment status enumeration following the outbound lifecycle."""
    DRAFT = 'draft', 'Draft'
    READY = 'ready', 'Ready'
    SHIPPED = 'shipped', 'Shipped'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'


class DestinationType(models.TextChoices):
    FBA = 'FBA', 'FBA'
    CUSTOMER = 'Customer', 'Customer'
    WAREHOUSE = 'Warehouse', 'Warehouse'
    OTHER = 'Other', 'Other'


class Shipment(models.Model):
    """
    Outbound shipment made of boxes of SKU lines.

    Boxes are embedded values (a JSON list) addressed by position. Totals are
    cached copies recomputed by the workflow service after every box change.
    Stock is only reserved once the shipment leaves draft.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    shipment_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="Sequential human readable number, e.g. SHP2026-0001"
    )
    pack_group = models.CharField(
        max_length=50,
        blank=True,
        help_text="Pack group the boxes were planned in"
    )
    fba_shipment_id = models.CharField(
        max_length=50,
        blank=True,
        db_index=True,
        help_text="Shipment id issued by the fulfillment network"
    )

    destination = models.CharField(max_length=255, blank=True)
    destination_type = models.CharField(
        max_length=20,
        choices=DestinationType.choices,
        default=DestinationType.FBA
    )

    status = models.CharField(
        max_length=20,
        choices=ShipmentStatus.choices,
        default=ShipmentStatus.DRAFT,
        help_text="Current shipment status"
    )

    boxes = models.JSONField(
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text="Ordered list of boxes with their item lines"
    )

    # Cached totals
    total_boxes = models.PositiveIntegerField(default=0)
    total_items = models.PositiveIntegerField(default=0)
    total_skus = models.PositiveIntegerField(default=0)
    total_weight = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0.000'),
        help_text="Sum of effective box weights in kg"
    )

    shipping_cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Cost of shipping this shipment"
    )
    carrier = models.CharField(max_length=100, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True)

    shipment_date = models.DateTimeField(null=True, blank=True)
    delivery_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    version = models.PositiveIntegerField(
        default=0,
        help_text="Incremented on every write; used to reject stale updates"
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_shipments'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='updated_shipments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'shipments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', '-created_at']),
            models.Index(fields=['destination_type']),
            models.Index(fields=['pack_group']),
        ]

    def __str__(self):
        return f"{self.shipment_number} ({self.status})"

    def save(self, *args, **kwargs):
        """
        Allocate the shipment number on first save.

        Later saves (admin edits included) go through save_versioned() so they
        bump the version and are rejected when stale.
        """
        if not self._state.adding:
            self.save_versioned()
            return
        if not self.shipment_number:
            self.shipment_number = self.generate_shipment_number()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_shipment_number(now=None) -> str:
        prefix = get_setting('SHIPMENT_NUMBER_PREFIX')
        padding = get_setting('SHIPMENT_NUMBER_PADDING')
        year = (now or timezone.now()).year
        value = ShipmentSequence.next_value(prefix, year)
        return f"{prefix}{year}-{value:0{padding}d}"

    def save_versioned(self):
        """
        Persist every field only if nobody else wrote since this instance was loaded.

        Raises:
            StaleShipmentException: If the stored version moved on
        """
        expected = self.version
        now = timezone.now()
        values = {
            field.attname: getattr(self, field.attname)
            for field in self._meta.concrete_fields
            if not field.primary_key
        }
        values['version'] = expected + 1
        values['updated_at'] = now

        updated = Shipment.objects.filter(pk=self.pk, version=expected).update(**values)
        if not updated:
            current = Shipment.objects.filter(pk=self.pk).values_list('version', flat=True).first()
            raise StaleShipmentException(self.shipment_number, expected, current)

        self.version = expected + 1
        self.updated_at = now

    @property
    def is_draft(self):
        return self.status == ShipmentStatus.DRAFT

    @property
    def is_terminal(self):
        return self.status in (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED)
