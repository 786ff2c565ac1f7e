from django.contrib import admin

from core.models import Branch


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ["name", "remote_storage_id", "phone", "is_active", "updated_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "address", "remote_storage_id"]
