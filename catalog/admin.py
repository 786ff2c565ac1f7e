from django.contrib import admin

from catalog.models import Category, Product, ProductInventory


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ["name", "remote_category_id", "sort_order", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["name", "remote_category_id"]


class ProductInventoryInline(admin.TabularInline):
    model = ProductInventory
    extra = 0
    readonly_fields = ["updated_at"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "remote_product_id", "category", "price", "custom_unit", "is_active"]
    list_filter = ["is_active", "category"]
    search_fields = ["name", "remote_product_id", "remote_ingredient_id"]
    inlines = [ProductInventoryInline]
