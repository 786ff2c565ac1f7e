from rest_framework.routers import SimpleRouter

from orders.views import OrderViewSet

router = SimpleRouter()
router.register(r"orders", OrderViewSet, basename="order")

urlpatterns = router.urls
