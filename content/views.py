import logging

from django.db import transaction
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from content.models import Banner, SiteConfig
from content.serializers import BannerOrderSerializer, BannerSerializer, SiteConfigSerializer

logger = logging.getLogger(__name__)


class BannerViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Banner.objects.filter(is_active=True).order_by("sort_order", "-created_at")
    serializer_class = BannerSerializer
    permission_classes = [AllowAny]
    pagination_class = None


class AdminBannerViewSet(viewsets.ModelViewSet):
    queryset = Banner.objects.all().order_by("sort_order", "-created_at")
    serializer_class = BannerSerializer
    permission_classes = [IsAdminUser]

    @action(detail=False, methods=["post"])
    def reorder(self, request):
        """Apply `[{id, sort_order}, ...]` in one transaction."""
        serializer = BannerOrderSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        orders = {item["id"]: item["sort_order"] for item in serializer.validated_data}

        with transaction.atomic():
            banners = Banner.objects.select_for_update().in_bulk(list(orders))
            missing = sorted(str(banner_id) for banner_id in orders if banner_id not in banners)
            if missing:
                raise ValidationError({"id": [f"Unknown banner: {banner_id}" for banner_id in missing]})
            for banner_id, banner in banners.items():
                banner.sort_order = orders[banner_id]
            Banner.objects.bulk_update(banners.values(), ["sort_order"])

        logger.info("banners_reordered count=%s", len(banners), extra={"user_id": request.user.pk})
        return Response(BannerSerializer(self.get_queryset(), many=True).data)


class SiteConfigView(APIView):
    """Public read of the storefront configuration; staff may update it."""

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAdminUser()]

    def get(self, request):
        return Response(SiteConfigSerializer(SiteConfig.load()).data)

    def put(self, request):
        return self._update(request, partial=False)

    def patch(self, request):
        return self._update(request, partial=True)

    def _update(self, request, partial):
        serializer = SiteConfigSerializer(SiteConfig.load(), data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info("site_config_updated fields=%s", ",".join(sorted(request.data)), extra={"user_id": request.user.pk})
        return Response(serializer.data)
