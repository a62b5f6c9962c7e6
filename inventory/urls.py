from rest_framework.routers import DefaultRouter

from inventory.views import InventoryCountViewSet, LocationViewSet, ProductViewSet, SkuMatchResultViewSet

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"locations", LocationViewSet, basename="location")
router.register(r"inventory-counts", InventoryCountViewSet, basename="inventory-count")
router.register(r"sku-matches", SkuMatchResultViewSet, basename="sku-match")

urlpatterns = router.urls
