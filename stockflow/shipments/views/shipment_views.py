"""
Shipment views.

Thin adapter over ShipmentService and PackGroupService: validate the request
shape, call the service, render the result. Business errors are rendered by
the project exception handler.
"""

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Shipment
from ..services import PackGroupService, ShipmentService
from ..serializers.shipment_serializers import (
    AddItemSerializer, BoxInputSerializer, DeliverSerializer, DuplicateBoxSerializer,
    ShipmentCreateSerializer, ShipmentDetailSerializer, ShipmentListSerializer,
    ShipmentUpdateSerializer, ShipSerializer, VersionSerializer
)
from ..serializers.pack_group_serializers import DistributionUpdateSerializer, PackGroupCreateSerializer


def success(data, status_code=status.HTTP_200_OK):
    return Response({
        'success': True,
        'data': data
    }, status=status_code)


class ShipmentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Shipment management.

    Provides CRUD operations and workflow actions for shipments.
    """

    queryset = Shipment.objects.select_related('created_by', 'updated_by').all()
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status', 'destination_type', 'pack_group', 'fba_shipment_id', 'shipment_number']
    ordering_fields = ['created_at', 'shipment_number', 'status', 'shipment_date']
    ordering = ['-created_at']
    http_method_names = ['get', 'post', 'put', 'patch', 'delete', 'head', 'options']

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'list':
            return ShipmentListSerializer
        elif self.action == 'create':
            return ShipmentCreateSerializer
        elif self.action in ('update', 'partial_update'):
            return ShipmentUpdateSerializer
        elif self.action == 'add_box':
            return BoxInputSerializer
        elif self.action == 'add_item':
            return AddItemSerializer
        elif self.action == 'duplicate_box':
            return DuplicateBoxSerializer
        elif self.action == 'ship':
            return ShipSerializer
        elif self.action == 'deliver':
            return DeliverSerializer
        elif self.action == 'pack_group':
            return PackGroupCreateSerializer
        elif self.action == 'distribution' and self.request.method == 'PUT':
            return DistributionUpdateSerializer
        elif self.action in ('finalize', 'cancel', 'destroy'):
            return VersionSerializer
        return ShipmentDetailSerializer

    def get_shipment_service(self):
        return ShipmentService()

    def get_pack_group_service(self):
        return PackGroupService(shipment_service=self.get_shipment_service())

    def validated(self):
        serializer = self.get_serializer(data=self.request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        return data, data.pop('expected_version', None)

    def render(self, shipment, status_code=status.HTTP_200_OK):
        return success(ShipmentDetailSerializer(shipment).data, status_code)

    def retrieve(self, request, *args, **kwargs):
        shipment = self.get_shipment_service().get_shipment(kwargs['pk'])
        return self.render(shipment)

    def create(self, request, *args, **kwargs):
        data, _ = self.validated()
        shipment = self.get_shipment_service().create_shipment(data, request.user)
        return self.render(shipment, status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        data, expected_version = self.validated()
        shipment = self.get_shipment_service().update_details(
            kwargs['pk'], data, request.user, expected_version=expected_version
        )
        return self.render(shipment)

    def destroy(self, request, *args, **kwargs):
        _, expected_version = self.validated()
        self.get_shipment_service().delete(kwargs['pk'], request.user, expected_version=expected_version)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'], url_path=r'by-number/(?P<shipment_number>[^/]+)')
    def by_number(self, request, shipment_number=None):
        """Look a shipment up by its shipment number."""
        shipment = self.get_shipment_service().get_by_number(shipment_number)
        return self.render(shipment)

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        """Shipment counts and totals per status."""
        return success(self.get_shipment_service().get_statistics())

    @action(detail=True, methods=['post'])
    def add_box(self, request, pk=None):
        """Append a box to a draft shipment."""
        data, expected_version = self.validated()
        shipment = self.get_shipment_service().add_box(pk, data, request.user, expected_version=expected_version)
        return self.render(shipment)

    @action(detail=True, methods=['post'])
    def add_item(self, request, pk=None):
        """Add a line to an existing box."""
        data, expected_version = self.validated()
        box_index = data.pop('box_index')
        shipment = self.get_shipment_service().add_item_to_box(
            pk, box_index, data, request.user, expected_version=expected_version
        )
        return self.render(shipment)

    @action(detail=True, methods=['post'])
    def duplicate_box(self, request, pk=None):
        """Append a copy of a box."""
        data, expected_version = self.validated()
        box_index = data.pop('box_index')
        shipment = self.get_shipment_service().duplicate_box(
            pk, box_index, data, request.user, expected_version=expected_version
        )
        return self.render(shipment)

    @action(detail=True, methods=['post'])
    def finalize(self, request, pk=None):
        """Reserve stock and move the shipment to ready."""
        _, expected_version = self.validated()
        shipment = self.get_shipment_service().finalize(pk, request.user, expected_version=expected_version)
        return self.render(shipment)

    @action(detail=True, methods=['post'])
    def ship(self, request, pk=None):
        data, expected_version = self.validated()
        shipment = self.get_shipment_service().mark_as_shipped(
            pk,
            shipment_date=data.get('shipment_date'),
            tracking_number=data.get('tracking_number'),
            carrier=data.get('carrier'),
            user=request.user,
            expected_version=expected_version
        )
        return self.render(shipment)

    @action(detail=True, methods=['post'])
    def deliver(self, request, pk=None):
        data, expected_version = self.validated()
        shipment = self.get_shipment_service().mark_as_delivered(
            pk, delivery_date=data.get('delivery_date'), user=request.user, expected_version=expected_version
        )
        return self.render(shipment)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a draft or ready shipment, returning reserved stock."""
        _, expected_version = self.validated()
        shipment = self.get_shipment_service().cancel(pk, request.user, expected_version=expected_version)
        return self.render(shipment)

    @action(detail=True, methods=['get', 'put'])
    def distribution(self, request, pk=None):
        """GET the SKU x box matrix, PUT new per-box quantities."""
        service = self.get_pack_group_service()
        if request.method == 'PUT':
            data, expected_version = self.validated()
            service.update_box_distribution(pk, data['skus'], request.user, expected_version=expected_version)
        return success(service.get_pack_group_data(pk))

    @action(detail=False, methods=['post'], url_path='pack-group')
    def pack_group(self, request):
        """Create a draft shipment from a SKU x box matrix."""
        data, _ = self.validated()
        shipment = self.get_pack_group_service().create_from_pack_group(data, request.user)
        return self.render(shipment, status.HTTP_201_CREATED)
