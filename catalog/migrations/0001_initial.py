import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Category",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("remote_category_id", models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("display_name", models.CharField(blank=True, default="", max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("image_url", models.CharField(blank=True, default="", max_length=512)),
                ("sort_order", models.IntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["sort_order", "name"],
                "indexes": [
                    models.Index(fields=["is_active", "sort_order"], name="category_active_sort_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("remote_product_id", models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ("remote_ingredient_id", models.CharField(blank=True, max_length=64, null=True)),
                ("name", models.CharField(max_length=255)),
                ("display_name", models.CharField(blank=True, default="", max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("original_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("image_url", models.CharField(blank=True, default="", max_length=512)),
                ("display_image_url", models.CharField(blank=True, default="", max_length=512)),
                ("is_active", models.BooleanField(default=True)),
                ("attributes", models.JSONField(blank=True, default=dict)),
                ("custom_quantity", models.DecimalField(blank=True, decimal_places=3, max_digits=10, null=True)),
                ("custom_unit", models.CharField(blank=True, max_length=16, null=True)),
                ("quantity_step", models.DecimalField(blank=True, decimal_places=3, max_digits=10, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "category",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="products", to="catalog.category"),
                ),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["remote_ingredient_id"], name="product_ingredient_idx"),
                    models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductInventory",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.DecimalField(decimal_places=3, default=0, max_digits=12)),
                ("unit", models.CharField(default="pcs", max_length=16)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="inventory", to="core.branch"),
                ),
                (
                    "product",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="inventory", to="catalog.product"),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["branch", "quantity"], name="inventory_branch_qty_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=["product", "branch"], name="uniq_inventory_product_branch"),
                    models.CheckConstraint(condition=models.Q(quantity__gte=0), name="inventory_quantity_non_negative"),
                ],
            },
        ),
    ]
