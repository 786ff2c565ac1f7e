from django.urls import path
from rest_framework.routers import SimpleRouter

from sync.views import SyncFullView, SyncImagesView, SyncInventoryView, SyncRunViewSet

router = SimpleRouter()
router.register(r"runs", SyncRunViewSet, basename="sync-run")

urlpatterns = [
    path("full", SyncFullView.as_view(), name="sync-full"),
    path("inventory", SyncInventoryView.as_view(), name="sync-inventory"),
    path("images", SyncImagesView.as_view(), name="sync-images"),
] + router.urls
