from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import AdminBranchViewSet, BranchViewSet, healthz, readyz

router = DefaultRouter()
router.register(r"branches", BranchViewSet, basename="branch")
router.register(r"admin/branches", AdminBranchViewSet, basename="admin-branch")

urlpatterns = router.urls + [
    path("healthz", healthz, name="healthz"),
    path("readyz", readyz, name="readyz"),
]
