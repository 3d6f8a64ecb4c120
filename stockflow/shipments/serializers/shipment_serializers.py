"""
Shipment serializers.

Input serializers only check shapes and types; business rules (draft-only
edits, stock pre-checks, box indexes) are enforced by ShipmentService.
"""

from rest_framework import serializers

from inventory.models import ItemCondition, PrepType
from ..models import DestinationType, Shipment
from ..services.workflow import ShipmentWorkflow


class DimensionsSerializer(serializers.Serializer):
    length = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, default=0)
    width = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, default=0)
    height = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, default=0)


class BoxItemInputSerializer(serializers.Serializer):
    """Serializer for one box line supplied by a caller."""

    sku = serializers.CharField(max_length=100)
    qty = serializers.IntegerField(min_value=1)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    product_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    asin = serializers.CharField(max_length=20, required=False, allow_blank=True)
    fnsku = serializers.CharField(max_length=20, required=False, allow_blank=True)
    condition = serializers.ChoiceField(choices=ItemCondition.choices, required=False)
    prep_type = serializers.ChoiceField(choices=PrepType.choices, required=False)
    unit_weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)

    def validate_sku(self, value):
        if not value.strip():
            raise serializers.ValidationError("SKU cannot be empty")
        return value.strip().upper()


class BoxInputSerializer(serializers.Serializer):
    """Serializer for adding a box."""

    box_no = serializers.CharField(max_length=50, required=False, allow_blank=True)
    box_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    items = BoxItemInputSerializer(many=True, required=False)
    box_weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    dimensions = DimensionsSerializer(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    expected_version = serializers.IntegerField(min_value=0, required=False)


class AddItemSerializer(BoxItemInputSerializer):
    """Serializer for adding a line to an existing box."""

    # Range is checked against the shipment's boxes by the service
    box_index = serializers.IntegerField()
    expected_version = serializers.IntegerField(min_value=0, required=False)


class DuplicateBoxSerializer(serializers.Serializer):
    """Serializer for duplicating a box; everything but box_index overrides box metadata."""

    box_index = serializers.IntegerField()
    box_no = serializers.CharField(max_length=50, required=False, allow_blank=True)
    box_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    box_weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    dimensions = DimensionsSerializer(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    expected_version = serializers.IntegerField(min_value=0, required=False)


class ShipmentCreateSerializer(serializers.Serializer):
    """Serializer for creating draft shipments."""

    destination = serializers.CharField(max_length=255, required=False, allow_blank=True)
    destination_type = serializers.ChoiceField(choices=DestinationType.choices, required=False)
    pack_group = serializers.CharField(max_length=50, required=False, allow_blank=True)
    fba_shipment_id = serializers.CharField(max_length=50, required=False, allow_blank=True)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    shipping_cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class ShipmentUpdateSerializer(ShipmentCreateSerializer):
    """Serializer for header edits. Boxes pass through so the service can reject them."""

    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    boxes = serializers.JSONField(required=False)
    expected_version = serializers.IntegerField(min_value=0, required=False)


class ShipSerializer(serializers.Serializer):
    shipment_date = serializers.DateTimeField(required=False)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    expected_version = serializers.IntegerField(min_value=0, required=False)

    def validate_tracking_number(self, value):
        return value.strip()


class DeliverSerializer(serializers.Serializer):
    delivery_date = serializers.DateTimeField(required=False)
    expected_version = serializers.IntegerField(min_value=0, required=False)


class VersionSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=0, required=False)


class ShipmentListSerializer(serializers.ModelSerializer):
    """Serializer for shipment listing."""

    class Meta:
        model = Shipment
        fields = [
            'id', 'shipment_number', 'pack_group', 'fba_shipment_id', 'destination',
            'destination_type', 'status', 'total_boxes', 'total_items', 'total_skus',
            'total_weight', 'carrier', 'tracking_number', 'shipment_date', 'version',
            'created_at'
        ]


class ShipmentDetailSerializer(serializers.ModelSerializer):
    """Serializer for shipment details, boxes included."""

    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)
    updated_by_username = serializers.CharField(source='updated_by.username', read_only=True, default=None)
    available_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Shipment
        fields = [
            'id', 'shipment_number', 'pack_group', 'fba_shipment_id', 'destination',
            'destination_type', 'status', 'available_transitions', 'boxes',
            'total_boxes', 'total_items', 'total_skus', 'total_weight',
            'shipping_cost', 'carrier', 'tracking_number', 'shipment_date',
            'delivery_date', 'notes', 'version', 'created_by_username',
            'updated_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_available_transitions(self, obj):
        return ShipmentWorkflow.available_transitions(obj)
