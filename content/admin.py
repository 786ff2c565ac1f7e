from django.contrib import admin

from content.models import Banner, SiteConfig


@admin.register(Banner)
class BannerAdmin(admin.ModelAdmin):
    list_display = ["title", "sort_order", "is_active", "updated_at"]
    list_filter = ["is_active"]
    search_fields = ["title", "subtitle"]


@admin.register(SiteConfig)
class SiteConfigAdmin(admin.ModelAdmin):
    list_display = ["site_name", "company_phone", "updated_at"]

    def has_add_permission(self, request):
        return not SiteConfig.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
