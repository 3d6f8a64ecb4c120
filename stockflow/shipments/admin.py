from django.contrib import admin

from .models import AuditLog, Shipment, ShipmentSequence


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    list_display = ['shipment_number', 'status', 'destination', 'destination_type', 'total_boxes', 'total_items', 'total_weight', 'created_at']
    list_filter = ['status', 'destination_type', 'created_at']
    search_fields = ['shipment_number', 'fba_shipment_id', 'tracking_number', 'destination']
    # Boxes, status and totals are owned by the workflow service.
    readonly_fields = [
        'shipment_number', 'status', 'boxes', 'total_boxes', 'total_items', 'total_skus', 'total_weight',
        'version', 'created_by', 'updated_by', 'created_at', 'updated_at',
    ]


@admin.register(ShipmentSequence)
class ShipmentSequenceAdmin(admin.ModelAdmin):
    list_display = ['prefix', 'year', 'last_value']
    readonly_fields = ['last_value']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['shipment_number', 'action', 'status', 'user', 'timestamp']
    list_filter = ['action', 'status', 'timestamp']
    search_fields = ['shipment_number', 'notes']
    readonly_fields = ['timestamp']
    date_hierarchy = 'timestamp'
