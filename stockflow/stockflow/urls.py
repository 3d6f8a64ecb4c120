"""
URL configuration for stockflow project.

The stock ledger and shipment APIs are mounted under /api/.
"""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path
from django.views.decorators.http import require_http_methods


@require_http_methods(["GET"])
def api_root(request):
    """API root view with available endpoints."""
    return JsonResponse({
        'message': 'Stockflow API',
        'version': '1.0.0',
        'endpoints': {
            'inventory': {
                'stock_units': '/api/stock-units/',
                'movements': '/api/movements/',
            },
            'shipments': {
                'shipments': '/api/shipments/',
                'pack_group': '/api/shipments/pack-group/',
            },
        }
    })


urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", api_root, name="api-root"),
    path("api/", include("inventory.urls")),
    path("api/", include("shipments.urls")),
]
