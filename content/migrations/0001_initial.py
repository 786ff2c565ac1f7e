import uuid

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Banner",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("subtitle", models.CharField(blank=True, default="", max_length=255)),
                ("image_url", models.CharField(blank=True, default="", max_length=512)),
                ("link_url", models.CharField(blank=True, default="", max_length=512)),
                ("link_text", models.CharField(blank=True, default="", max_length=128)),
                ("sort_order", models.IntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["sort_order", "-created_at"],
                "indexes": [
                    models.Index(fields=["is_active", "sort_order"], name="banner_active_sort_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SiteConfig",
            fields=[
                ("id", models.PositiveSmallIntegerField(default=1, editable=False, primary_key=True, serialize=False)),
                ("site_name", models.CharField(max_length=255)),
                ("site_description", models.TextField(blank=True, default="")),
                ("logo_url", models.CharField(blank=True, default="", max_length=512)),
                ("favicon_url", models.CharField(blank=True, default="", max_length=512)),
                ("seo_title", models.CharField(blank=True, default="", max_length=255)),
                ("seo_description", models.TextField(blank=True, default="")),
                ("seo_keywords", models.TextField(blank=True, default="")),
                ("og_image_url", models.CharField(blank=True, default="", max_length=512)),
                (
                    "homepage_type",
                    models.CharField(
                        choices=[("landing", "Landing page"), ("shop", "Shop")],
                        default="landing",
                        max_length=16,
                    ),
                ),
                ("hero_title", models.CharField(blank=True, default="", max_length=255)),
                ("hero_subtitle", models.CharField(blank=True, default="", max_length=512)),
                ("hero_banner_url", models.CharField(blank=True, default="", max_length=512)),
                ("hero_cta_text", models.CharField(blank=True, default="", max_length=128)),
                ("company_name", models.CharField(blank=True, default="", max_length=255)),
                ("company_address", models.CharField(blank=True, default="", max_length=255)),
                ("company_phone", models.CharField(blank=True, default="", max_length=64)),
                ("company_email", models.EmailField(blank=True, default="", max_length=254)),
                ("company_website", models.CharField(blank=True, default="", max_length=255)),
                ("social_links", models.JSONField(blank=True, default=dict)),
                ("currency", models.CharField(default="UAH", max_length=8)),
                ("language", models.CharField(default="uk", max_length=8)),
                ("theme", models.JSONField(blank=True, default=dict)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
    ]
