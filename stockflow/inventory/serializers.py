from rest_framework import serializers

from .models import ItemCondition, PrepType, StockMovement, StockUnit


class StockUnitSerializer(serializers.ModelSerializer):
    total_qty = serializers.IntegerField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = StockUnit
        fields = [
            "id",
            "sku",
            "name",
            "barcode",
            "asin",
            "fnsku",
            "product_id",
            "condition",
            "prep_type",
            "available_qty",
            "faulty_qty",
            "total_qty",
            "unit_weight",
            "unit_cost",
            "selling_price",
            "supplier",
            "category",
            "low_stock_threshold",
            "is_low_stock",
            "is_active",
            "last_restocked",
            "created_by_username",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StockUnitRegisterSerializer(serializers.Serializer):
    sku = serializers.CharField(max_length=100)
    name = serializers.CharField(max_length=255)
    barcode = serializers.CharField(max_length=100, required=False, allow_blank=True)
    asin = serializers.CharField(max_length=20, required=False, allow_blank=True)
    fnsku = serializers.CharField(max_length=20, required=False, allow_blank=True)
    product_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    condition = serializers.ChoiceField(choices=ItemCondition.choices, required=False)
    prep_type = serializers.ChoiceField(choices=PrepType.choices, required=False)
    available_qty = serializers.IntegerField(min_value=0, default=0)
    faulty_qty = serializers.IntegerField(min_value=0, default=0)
    unit_weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    selling_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    supplier = serializers.CharField(max_length=200, required=False, allow_blank=True)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True)
    low_stock_threshold = serializers.IntegerField(min_value=0, required=False)


class QuantitySerializer(serializers.Serializer):
    qty = serializers.IntegerField(min_value=1)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AdjustmentSerializer(serializers.Serializer):
    delta = serializers.IntegerField()
    faulty = serializers.BooleanField(default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_delta(self, value):
        if value == 0:
            raise serializers.ValidationError("Adjustment cannot be zero")
        return value


class SetStockSerializer(serializers.Serializer):
    available_qty = serializers.IntegerField(min_value=0)
    faulty_qty = serializers.IntegerField(min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class StockMovementSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "stock_unit",
            "sku",
            "movement_type",
            "field",
            "quantity_delta",
            "available_after",
            "faulty_after",
            "reference",
            "user",
            "username",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class StockUnitCatalogSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    barcode = serializers.CharField(max_length=100, required=False, allow_blank=True)
    asin = serializers.CharField(max_length=20, required=False, allow_blank=True)
    fnsku = serializers.CharField(max_length=20, required=False, allow_blank=True)
    product_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    condition = serializers.ChoiceField(choices=ItemCondition.choices, required=False)
    prep_type = serializers.ChoiceField(choices=PrepType.choices, required=False)
    unit_weight = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=0, required=False)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    selling_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    supplier = serializers.CharField(max_length=200, required=False, allow_blank=True)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True)
    low_stock_threshold = serializers.IntegerField(min_value=0, required=False)

    def validate(self, attrs):
        unknown = sorted(set(self.initial_data) - set(self.fields))
        if unknown:
            raise serializers.ValidationError({field: "Not editable." for field in unknown})
        return attrs
