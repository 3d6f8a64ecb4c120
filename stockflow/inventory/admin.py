from django.contrib import admin

from .models import StockMovement, StockUnit


@admin.register(StockUnit)
class StockUnitAdmin(admin.ModelAdmin):
    list_display = ["sku", "name", "available_qty", "faulty_qty", "low_stock_threshold", "is_active", "last_restocked"]
    list_filter = ["is_active", "condition", "prep_type", "category", "supplier"]
    search_fields = ["sku", "name", "asin", "fnsku", "barcode"]
    # Quantities change only through the ledger so every change leaves a movement.
    readonly_fields = ["available_qty", "faulty_qty", "last_restocked", "created_by", "updated_by", "created_at", "updated_at"]


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ["sku", "movement_type", "field", "quantity_delta", "available_after", "reference", "user", "created_at"]
    list_filter = ["movement_type", "field", "created_at"]
    search_fields = ["sku", "reference", "notes"]
    date_hierarchy = "created_at"

    # Append-only: rows are written by the ledger.
    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
