"""
Audit trail of shipment commands.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.conf import settings
from django.utils import timezone


def to_json_value(value):
    """Decimals and UUIDs become strings; dicts, lists and tuples are walked."""
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    return value


def diff_values(before, after):
    """{field: {'old', 'new'}} for every field whose value differs between two snapshots."""
    before = before or {}
    after = after or {}
    changes = {}
    for field in list(before) + [key for key in after if key not in before]:
        old, new = before.get(field), after.get(field)
        if old != new:
            changes[field] = {'old': old, 'new': new}
    return changes


class AuditLog(models.Model):
    """
    One row per shipment command: who ran it, what changed, which status it left.

    Rows reference the shipment by id and number rather than a foreign key so
    they survive the deletion of a draft. Nothing in the workflow reads them.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    shipment_id = models.UUIDField(db_index=True)
    shipment_number = models.CharField(max_length=50)
    action = models.CharField(
        max_length=50,
        help_text="created, box_added, item_added, status_changed, deleted, ..."
    )
    status = models.CharField(
        max_length=20,
        help_text="Shipment status after the command"
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='shipment_audit_logs'
    )

    changes = models.JSONField(
        default=dict,
        blank=True,
        help_text="Changed fields as {field: {old, new}}"
    )
    notes = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'shipment_audit_logs'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['shipment_id', '-timestamp']),
            models.Index(fields=['action', '-timestamp']),
        ]

    def __str__(self):
        return f"{self.shipment_number} {self.action} by {self.user or 'system'}"

    @classmethod
    def record(cls, shipment, action: str, user=None, before=None, after=None, notes="", metadata=None):
        """
        Store an audit row for a command on a shipment.

        Args:
            shipment: Shipment the command ran against
            action: Short command name
            user: Acting user, None for system actions
            before: Snapshot of the relevant values before the command
            after: Snapshot after the command; only differing fields are kept
            notes: Free text for the admin
            metadata: Extra command data (reserved quantities, edits, ...)
        """
        return cls.objects.create(
            shipment_id=shipment.pk,
            shipment_number=shipment.shipment_number,
            action=action,
            status=shipment.status,
            user=user,
            changes=to_json_value(diff_values(before, after)),
            notes=notes,
            metadata=to_json_value(metadata or {})
        )

    @classmethod
    def record_transition(cls, shipment, old_status: str, user=None, notes="", metadata=None):
        return cls.record(
            shipment,
            'status_changed',
            user=user,
            before={'status': str(old_status)},
            after={'status': str(shipment.status)},
            notes=notes,
            metadata=metadata
        )
