from django.contrib import admin

from sync.models import SyncRun


@admin.register(SyncRun)
class SyncRunAdmin(admin.ModelAdmin):
    list_display = ["started_at", "trigger", "source", "status", "categories", "products", "branches", "inventory"]
    list_filter = ["trigger", "status", "source"]
    readonly_fields = [field.name for field in SyncRun._meta.fields]
