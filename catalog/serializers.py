from rest_framework import serializers

from catalog.models import Category, Product, ProductInventory


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = [
            "id",
            "remote_category_id",
            "name",
            "display_name",
            "description",
            "image_url",
            "sort_order",
            "is_active",
            "product_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_remote_category_id(self, value):
        return value or None


class ProductInventorySerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source="branch.name", read_only=True)

    class Meta:
        model = ProductInventory
        fields = ["branch", "branch_name", "quantity", "unit", "updated_at"]
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)
    ingredient_unit = serializers.CharField(read_only=True)
    inventory = ProductInventorySerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "remote_product_id",
            "remote_ingredient_id",
            "category",
            "category_name",
            "name",
            "display_name",
            "description",
            "price",
            "original_price",
            "image_url",
            "display_image_url",
            "is_active",
            "attributes",
            "ingredient_unit",
            "custom_quantity",
            "custom_unit",
            "quantity_step",
            "inventory",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative.")
        return value

    def validate(self, attrs):
        # Admin forms post "" for untouched optional fields.
        for field_name in ("remote_product_id", "remote_ingredient_id", "custom_unit"):
            if self.initial_data.get(field_name, None) == "":
                attrs[field_name] = None
        return attrs


class AvailabilitySerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    product_name = serializers.CharField()
    branch_id = serializers.UUIDField()
    branch_name = serializers.CharField()
    is_available = serializers.SerializerMethodField()
    available_quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit = serializers.CharField()

    def get_is_available(self, obj):
        return obj["available_quantity"] > 0
