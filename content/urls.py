from django.urls import path
from rest_framework.routers import SimpleRouter

from content.views import AdminBannerViewSet, BannerViewSet, SiteConfigView

router = SimpleRouter()
router.register(r"banners", BannerViewSet, basename="banner")
router.register(r"admin/banners", AdminBannerViewSet, basename="admin-banner")

urlpatterns = router.urls + [
    path("site-config/", SiteConfigView.as_view(), name="site-config"),
]
