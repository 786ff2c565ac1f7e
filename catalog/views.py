import uuid

from django.db.models import Count, Prefetch, Q
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from catalog.models import Category, Product, ProductInventory
from catalog.serializers import AvailabilitySerializer, CategorySerializer, ProductSerializer
from core.models import Branch


def _with_product_count(queryset):
    return queryset.annotate(product_count=Count("products", filter=Q(products__is_active=True)))


def _with_inventory(queryset):
    return queryset.select_related("category").prefetch_related(
        Prefetch("inventory", queryset=ProductInventory.objects.select_related("branch").order_by("branch__name"))
    )


class CategoryViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = CategorySerializer
    permission_classes = [AllowAny]
    pagination_class = None

    def get_queryset(self):
        return _with_product_count(Category.objects.filter(is_active=True)).order_by("sort_order", "name")


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    """Storefront product listing.

    Filters: `?category=<uuid>`, `?branch=<uuid>` (only products with stock
    in that branch) and `?search=<text>` (name match).
    """

    serializer_class = ProductSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        queryset = _with_inventory(Product.objects.filter(is_active=True, category__is_active=True))
        params = self.request.query_params

        category_id = params.get("category")
        if category_id:
            queryset = queryset.filter(category_id=self._parse_uuid("category", category_id))

        branch_id = params.get("branch")
        if branch_id:
            queryset = queryset.filter(
                inventory__branch_id=self._parse_uuid("branch", branch_id),
                inventory__quantity__gt=0,
            )

        search = (params.get("search") or "").strip()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(display_name__icontains=search))

        return queryset.order_by("category__sort_order", "name").distinct()

    @action(detail=True, methods=["get"], url_path=r"availability/(?P<branch_id>[^/.]+)")
    def availability(self, request, pk=None, branch_id=None):
        """Stock of one product in one branch; no inventory row means nothing on hand."""
        product = self.get_object()
        try:
            branch = Branch.objects.get(id=uuid.UUID(str(branch_id)), is_active=True)
        except (ValueError, Branch.DoesNotExist):
            raise NotFound("Branch not found.")

        row = ProductInventory.objects.filter(product=product, branch=branch).first()
        serializer = AvailabilitySerializer(
            {
                "product_id": product.id,
                "product_name": product.display_name or product.name,
                "branch_id": branch.id,
                "branch_name": branch.name,
                "available_quantity": row.quantity if row else 0,
                "unit": row.unit if row else ProductInventory.DEFAULT_UNIT,
            }
        )
        return Response(serializer.data)

    @staticmethod
    def _parse_uuid(field, value):
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise ValidationError({field: ["Must be a valid UUID."]})


class AdminCategoryViewSet(viewsets.ModelViewSet):
    serializer_class = CategorySerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        return _with_product_count(Category.objects.all()).order_by("sort_order", "name")


class AdminProductViewSet(viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        return _with_inventory(Product.objects.all()).order_by("name")
