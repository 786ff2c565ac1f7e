import uuid

from django.db import models

from core.models import Branch


class Category(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    remote_category_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=255)
    display_name = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    image_url = models.CharField(max_length=512, blank=True, default="")
    sort_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "name"]
        indexes = [
            models.Index(fields=["is_active", "sort_order"], name="category_active_sort_idx"),
        ]

    def __str__(self):
        return self.display_name or self.name


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    remote_product_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    remote_ingredient_id = models.CharField(max_length=64, null=True, blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="products")
    name = models.CharField(max_length=255)
    display_name = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    # Display price: per kg, per litre or per piece, never Poster's raw subunits.
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    original_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    image_url = models.CharField(max_length=512, blank=True, default="")
    display_image_url = models.CharField(max_length=512, blank=True, default="")
    is_active = models.BooleanField(default=True)
    attributes = models.JSONField(default=dict, blank=True)
    custom_quantity = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    custom_unit = models.CharField(max_length=16, null=True, blank=True)
    quantity_step = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["remote_ingredient_id"], name="product_ingredient_idx"),
            models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def ingredient_unit(self):
        return (self.attributes or {}).get("ingredient_unit") or "pcs"


class ProductInventory(models.Model):
    DEFAULT_UNIT = "pcs"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="inventory")
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name="inventory")
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=0)
    unit = models.CharField(max_length=16, default=DEFAULT_UNIT)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["product", "branch"], name="uniq_inventory_product_branch"),
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name="inventory_quantity_non_negative"),
        ]
        indexes = [
            models.Index(fields=["branch", "quantity"], name="inventory_branch_qty_idx"),
        ]
