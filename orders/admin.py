from django.contrib import admin

from orders.models import Customer, Order, OrderItem


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ["name", "phone", "email", "created_at"]
    search_fields = ["name", "phone", "email"]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ["product", "product_name", "quantity", "unit_price", "line_total"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ["order_number", "status", "fulfillment", "branch", "total", "created_at"]
    list_filter = ["status", "fulfillment", "branch"]
    search_fields = ["order_number", "customer__name", "customer__phone", "customer__email"]
    inlines = [OrderItemInline]
