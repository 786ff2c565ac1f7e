import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from notifications.dispatch import dispatch_order_created, dispatch_order_status_changed
from orders.models import Order
from orders.serializers import OrderCreateSerializer, OrderSerializer, OrderStatusSerializer

logger = logging.getLogger(__name__)


class OrderViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Checkout is public; reading and managing orders is staff-only."""

    serializer_class = OrderSerializer
    throttle_scope = "checkout"

    def get_queryset(self):
        queryset = Order.objects.select_related("customer", "branch").prefetch_related("items")
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset.order_by("-created_at")

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return [IsAdminUser()]

    def get_throttles(self):
        if self.action == "create":
            return [ScopedRateThrottle()]
        return super().get_throttles()

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = serializer.save()
        logger.info(
            "order_created number=%s total=%s",
            order.order_number,
            order.total,
            extra={"order_id": order.id, "request_id": getattr(request, "request_id", None)},
        )
        dispatch_order_created(order)
        order = self.get_queryset().get(id=order.id)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        order = self.get_object()
        serializer = OrderStatusSerializer(order, data=request.data)
        serializer.is_valid(raise_exception=True)

        new_status = serializer.validated_data["status"]
        if new_status != order.status:
            previous = order.status
            order.status = new_status
            order.save(update_fields=["status", "updated_at"])
            logger.info(
                "order_status_changed from=%s to=%s",
                previous,
                new_status,
                extra={"order_id": order.id, "user_id": request.user.pk},
            )
            dispatch_order_status_changed(order)

        return Response(OrderSerializer(order).data)
