"""
Counter rows used to allocate sequential shipment numbers.
"""

from django.db import IntegrityError, models, transaction
from django.db.models import F


class ShipmentSequence(models.Model):
    """
    One locked counter row per (prefix, year).

    Numbers come from this row, never from counting shipments, so deleted
    drafts cannot cause a number to be handed out twice.
    """

    prefix = models.CharField(max_length=10)
    year = models.PositiveIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'shipment_sequences'
        constraints = [
            models.UniqueConstraint(fields=['prefix', 'year'], name='unique_shipment_sequence')
        ]

    def __str__(self):
        return f"{self.prefix}{self.year}: {self.last_value}"

    @classmethod
    def next_value(cls, prefix: str, year: int) -> int:
        """
        Allocate the next value for a prefix and year.

        Must run inside the caller's transaction: the value is only consumed
        when that transaction commits.
        """
        with transaction.atomic():
            try:
                with transaction.atomic():
                    counter, _ = cls.objects.select_for_update().get_or_create(prefix=prefix, year=year)
            except IntegrityError:
                # Another writer created the row first
                counter = cls.objects.select_for_update().get(prefix=prefix, year=year)

            cls.objects.filter(pk=counter.pk).update(last_value=F('last_value') + 1)
            counter.refresh_from_db(fields=['last_value'])
            return counter.last_value
