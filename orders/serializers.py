from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from rest_framework import serializers

from catalog.models import Product
from core.models import Branch
from orders.models import Order, OrderItem
from orders.services import estimate_ready_at, generate_order_number, upsert_customer

MONEY_QUANT = Decimal("0.01")


def _to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product", "product_name", "quantity", "unit_price", "line_total"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True, default="")
    customer_email = serializers.CharField(source="customer.email", read_only=True, default="")
    customer_phone = serializers.CharField(source="customer.phone", read_only=True, default="")
    branch_name = serializers.CharField(source="branch.name", read_only=True)
    estimated_ready_at = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "fulfillment",
            "customer",
            "customer_name",
            "customer_email",
            "customer_phone",
            "branch",
            "branch_name",
            "delivery_address",
            "subtotal",
            "delivery_fee",
            "total",
            "notes",
            "estimated_ready_at",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields

    def get_estimated_ready_at(self, obj):
        if obj.status in Order.FINAL_STATUSES:
            return None
        return estimate_ready_at(obj.fulfillment, now=obj.created_at).isoformat()


class OrderLineInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.filter(is_active=True))
    quantity = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=Decimal("0.001"))


class OrderCreateSerializer(serializers.Serializer):
    """Storefront checkout; prices always come from the catalog, never from the client."""

    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_phone = serializers.CharField(max_length=64, required=False, allow_blank=True)
    fulfillment = serializers.ChoiceField(choices=Order.Fulfillment.choices)
    delivery_address = serializers.CharField(max_length=512, required=False, allow_blank=True)
    pickup_branch = serializers.PrimaryKeyRelatedField(
        queryset=Branch.objects.filter(is_active=True), required=False, allow_null=True
    )
    delivery_fee = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), default=Decimal("0"))
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    items = OrderLineInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one item is required.")
        return value

    def validate(self, attrs):
        if not attrs.get("customer_email") and not attrs.get("customer_phone"):
            raise serializers.ValidationError({"customer_phone": "Provide a phone number or an email address."})

        fulfillment = attrs["fulfillment"]
        if fulfillment == Order.Fulfillment.DELIVERY:
            if not (attrs.get("delivery_address") or "").strip():
                raise serializers.ValidationError({"delivery_address": "Delivery address is required for delivery."})
            attrs["delivery_fee"] = attrs.get("delivery_fee") or Decimal("0")
        else:
            attrs["delivery_address"] = ""
            attrs["delivery_fee"] = Decimal("0")

        branch = attrs.get("pickup_branch") if fulfillment == Order.Fulfillment.PICKUP else None
        if branch is not None and not branch.pickup_available:
            raise serializers.ValidationError({"pickup_branch": "This branch does not offer pickup."})
        if branch is None:
            branch = Branch.objects.filter(is_active=True).order_by("name").first()
        if branch is None:
            raise serializers.ValidationError({"pickup_branch": "No available branch found."})
        attrs["_branch"] = branch

        lines = []
        subtotal = Decimal("0")
        for line in attrs["items"]:
            product = line["product"]
            unit_price = _to_money(product.price)
            line_total = _to_money(unit_price * line["quantity"])
            subtotal += line_total
            lines.append((product, line["quantity"], unit_price, line_total))
        attrs["_lines"] = lines
        attrs["_subtotal"] = _to_money(subtotal)
        attrs["_total"] = _to_money(subtotal + attrs["delivery_fee"])
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        customer = upsert_customer(
            validated_data["customer_name"],
            email=validated_data.get("customer_email"),
            phone=validated_data.get("customer_phone"),
        )
        order = Order.objects.create(
            order_number=generate_order_number(),
            customer=customer,
            branch=validated_data["_branch"],
            fulfillment=validated_data["fulfillment"],
            delivery_address=validated_data["delivery_address"],
            subtotal=validated_data["_subtotal"],
            delivery_fee=validated_data["delivery_fee"],
            total=validated_data["_total"],
            notes=validated_data.get("notes") or "",
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product=product,
                    product_name=product.display_name or product.name,
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=line_total,
                )
                for product, quantity, unit_price, line_total in validated_data["_lines"]
            ]
        )
        return order


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)

    def validate(self, attrs):
        order = self.instance
        if order.status in Order.FINAL_STATUSES and attrs["status"] != order.status:
            raise serializers.ValidationError({"status": f"Order is already {order.status}."})
        return attrs
