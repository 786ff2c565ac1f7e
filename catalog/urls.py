from rest_framework.routers import DefaultRouter

from catalog.views import AdminCategoryViewSet, AdminProductViewSet, CategoryViewSet, ProductViewSet

router = DefaultRouter()
router.register(r"categories", CategoryViewSet, basename="category")
router.register(r"products", ProductViewSet, basename="product")
router.register(r"admin/categories", AdminCategoryViewSet, basename="admin-category")
router.register(r"admin/products", AdminProductViewSet, basename="admin-product")

urlpatterns = router.urls
