from rest_framework import serializers

from core.models import Branch


class BranchSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = [
            "id",
            "remote_storage_id",
            "name",
            "address",
            "phone",
            "working_hours",
            "latitude",
            "longitude",
            "delivery_available",
            "pickup_available",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_remote_storage_id(self, value):
        # Empty strings would collide on the unique index; store them as NULL.
        return value or None
