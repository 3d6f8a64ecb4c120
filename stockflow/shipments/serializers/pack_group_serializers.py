"""
Pack group (SKU x box matrix) serializers.
"""

from rest_framework import serializers

from ..models import DestinationType


class MatrixBoxSerializer(serializers.Serializer):
    box_no = serializers.CharField(max_length=50, required=False, allow_blank=True)
    box_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    box_weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    length = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    width = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    height = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class MatrixRowSerializer(serializers.Serializer):
    """One SKU row; box_quantities is aligned with the boxes by position."""

    sku = serializers.CharField(max_length=100)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    box_quantities = serializers.ListField(child=serializers.IntegerField(min_value=0))


class PackGroupCreateSerializer(serializers.Serializer):
    """Serializer for creating a draft shipment from a matrix."""

    pack_group = serializers.CharField(max_length=50, required=False, allow_blank=True)
    fba_shipment_id = serializers.CharField(max_length=50, required=False, allow_blank=True)
    destination = serializers.CharField(max_length=255, required=False, allow_blank=True)
    destination_type = serializers.ChoiceField(choices=DestinationType.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    boxes = MatrixBoxSerializer(many=True, allow_empty=False)
    skus = MatrixRowSerializer(many=True)


class DistributionUpdateSerializer(serializers.Serializer):
    """Serializer for re-distributing SKUs across existing boxes."""

    skus = MatrixRowSerializer(many=True, allow_empty=False)
    expected_version = serializers.IntegerField(min_value=0, required=False)
