from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import StockMovement, StockUnit
from .serializers import (
    AdjustmentSerializer,
    QuantitySerializer,
    SetStockSerializer,
    StockUnitCatalogSerializer,
    StockMovementSerializer,
    StockUnitRegisterSerializer,
    StockUnitSerializer,
)
from .services.stock_ledger import StockLedger


def success(data, status_code=status.HTTP_200_OK):
    return Response({"success": True, "data": data}, status=status_code)


class StockUnitViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Stock units addressed by SKU.

    Quantities are read-only here; every change goes through a ledger action.
    """

    queryset = StockUnit.objects.select_related("created_by").all()
    serializer_class = StockUnitSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["is_active", "category", "supplier", "condition", "prep_type"]
    ordering_fields = ["sku", "name", "available_qty", "faulty_qty", "last_restocked"]
    ordering = ["sku"]
    lookup_field = "sku"
    lookup_value_regex = "[^/]+"

    ledger_class = StockLedger

    def get_ledger(self):
        return self.ledger_class()

    def get_object(self):
        unit = self.get_ledger().lookup(self.kwargs[self.lookup_field], include_inactive=True)
        self.check_object_permissions(self.request, unit)
        return unit

    def create(self, request, *args, **kwargs):
        serializer = StockUnitRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        unit = self.get_ledger().register(serializer.validated_data, user=request.user)
        return success(StockUnitSerializer(unit).data, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        """Edit catalog fields; unknown fields such as quantities are rejected"""
        serializer = StockUnitCatalogSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        unit = self.get_ledger().update_catalog(
            kwargs[self.lookup_field], dict(serializer.validated_data), user=request.user
        )
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"])
    def reserve(self, request, sku=None):
        """Reserve available stock"""
        serializer = QuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().reserve(
            sku, data["qty"], reference=data["reference"], user=request.user, notes=data["notes"]
        )
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"])
    def release(self, request, sku=None):
        """Return reserved stock to available"""
        serializer = QuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().release(
            sku, data["qty"], reference=data["reference"], user=request.user, notes=data["notes"]
        )
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"])
    def adjust(self, request, sku=None):
        """Manual correction of available or faulty quantity"""
        serializer = AdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().adjust(
            sku, data["delta"], faulty=data["faulty"], user=request.user, notes=data["notes"]
        )
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"])
    def restock(self, request, sku=None):
        serializer = QuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().restock(sku, data["qty"], user=request.user, notes=data["notes"])
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"], url_path="set-stock")
    def set_stock(self, request, sku=None):
        """Overwrite quantities after a physical count"""
        serializer = SetStockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().set_stock(
            sku, data["available_qty"], data.get("faulty_qty"), user=request.user, notes=data["notes"]
        )
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"], url_path="report-defect")
    def report_defect(self, request, sku=None):
        serializer = QuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().report_defect(sku, data["qty"], user=request.user, notes=data["notes"])
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"], url_path="clear-defect")
    def clear_defect(self, request, sku=None):
        serializer = QuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        unit = self.get_ledger().clear_defect(sku, data["qty"], user=request.user, notes=data["notes"])
        return success(StockUnitSerializer(unit).data)

    @action(detail=True, methods=["post"])
    def deactivate(self, request, sku=None):
        unit = self.get_ledger().deactivate(sku, user=request.user)
        return success(StockUnitSerializer(unit).data)

    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        """Active units at or below their low stock threshold"""
        units = self.get_ledger().low_stock()
        return success(StockUnitSerializer(units, many=True).data)

    @action(detail=False, methods=["get"])
    def statistics(self, request):
        """Totals over active units"""
        return success(self.get_ledger().get_statistics())

    @action(detail=True, methods=["get"])
    def movements(self, request, sku=None):
        """Ledger history for one SKU"""
        unit = self.get_object()
        movements = unit.movements.select_related("user").all()
        return success(StockMovementSerializer(movements, many=True).data)


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockMovement.objects.select_related("stock_unit", "user").all()
    serializer_class = StockMovementSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["sku", "movement_type", "field", "reference", "user"]
    ordering_fields = ["created_at", "sku"]
    ordering = ["-created_at"]
