from rest_framework import serializers

from content.models import Banner, SiteConfig


class BannerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Banner
        fields = [
            "id",
            "title",
            "subtitle",
            "image_url",
            "link_url",
            "link_text",
            "sort_order",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]


class BannerOrderSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    sort_order = serializers.IntegerField()


class SiteConfigSerializer(serializers.ModelSerializer):
    class Meta:
        model = SiteConfig
        exclude = ["id"]
        read_only_fields = ["updated_at"]

    def validate_social_links(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Expected an object of network name to URL.")
        return value

    def validate_theme(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Expected an object of color name to value.")
        return value
