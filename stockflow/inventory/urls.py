from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import StockMovementViewSet, StockUnitViewSet

router = DefaultRouter()
router.register(r"stock-units", StockUnitViewSet, basename="stockunit")
router.register(r"movements", StockMovementViewSet, basename="stockmovement")

urlpatterns = [
    path("", include(router.urls)),
]
