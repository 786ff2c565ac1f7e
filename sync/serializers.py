from rest_framework import serializers

from sync.models import SyncRun


class SyncRunSerializer(serializers.ModelSerializer):
    triggered_by = serializers.CharField(source="triggered_by.get_username", read_only=True, default=None)

    class Meta:
        model = SyncRun
        fields = [
            "id",
            "trigger",
            "source",
            "status",
            "categories",
            "products",
            "branches",
            "inventory",
            "skipped",
            "errors",
            "message",
            "failed_phase",
            "triggered_by",
            "started_at",
            "finished_at",
        ]
        read_only_fields = fields
