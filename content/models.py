import uuid

from django.conf import settings
from django.db import models


class Banner(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    subtitle = models.CharField(max_length=255, blank=True, default="")
    image_url = models.CharField(max_length=512, blank=True, default="")
    link_url = models.CharField(max_length=512, blank=True, default="")
    link_text = models.CharField(max_length=128, blank=True, default="")
    sort_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "-created_at"]
        indexes = [
            models.Index(fields=["is_active", "sort_order"], name="banner_active_sort_idx"),
        ]

    def __str__(self):
        return self.title


class SiteConfig(models.Model):
    """Storefront branding, SEO and contact details. There is exactly one row."""

    SINGLETON_ID = 1

    class HomepageType(models.TextChoices):
        LANDING = "landing", "Landing page"
        SHOP = "shop", "Shop"

    id = models.PositiveSmallIntegerField(primary_key=True, default=SINGLETON_ID, editable=False)
    site_name = models.CharField(max_length=255)
    site_description = models.TextField(blank=True, default="")
    logo_url = models.CharField(max_length=512, blank=True, default="")
    favicon_url = models.CharField(max_length=512, blank=True, default="")
    seo_title = models.CharField(max_length=255, blank=True, default="")
    seo_description = models.TextField(blank=True, default="")
    seo_keywords = models.TextField(blank=True, default="")
    og_image_url = models.CharField(max_length=512, blank=True, default="")
    homepage_type = models.CharField(max_length=16, choices=HomepageType.choices, default=HomepageType.LANDING)
    hero_title = models.CharField(max_length=255, blank=True, default="")
    hero_subtitle = models.CharField(max_length=512, blank=True, default="")
    hero_banner_url = models.CharField(max_length=512, blank=True, default="")
    hero_cta_text = models.CharField(max_length=128, blank=True, default="")
    company_name = models.CharField(max_length=255, blank=True, default="")
    company_address = models.CharField(max_length=255, blank=True, default="")
    company_phone = models.CharField(max_length=64, blank=True, default="")
    company_email = models.EmailField(blank=True, default="")
    company_website = models.CharField(max_length=255, blank=True, default="")
    # {"facebook": url, "instagram": url, "telegram": url, "viber": url}
    social_links = models.JSONField(default=dict, blank=True)
    currency = models.CharField(max_length=8, default="UAH")
    language = models.CharField(max_length=8, default="uk")
    # {"primary": "#2563eb", "secondary": ..., "accent": ...}
    theme = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.site_name

    @classmethod
    def load(cls):
        config, _ = cls.objects.get_or_create(id=cls.SINGLETON_ID, defaults={"site_name": settings.SHOP_NAME})
        return config
