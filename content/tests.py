from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from content.models import Banner, SiteConfig


class BannerApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="content-admin", password="pass1234", is_staff=True)
        self.customer = user_model.objects.create_user(username="content-user", password="pass1234")

        self.summer = Banner.objects.create(title="Літо", sort_order=2)
        self.cheese = Banner.objects.create(title="Тиждень сирів", sort_order=1)
        self.hidden = Banner.objects.create(title="Чернетка", sort_order=0, is_active=False)

    def test_public_list_shows_active_banners_in_order(self):
        response = self.client.get("/api/v1/banners/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["title"] for item in response.json()], ["Тиждень сирів", "Літо"])

    def test_admin_list_includes_inactive_banners(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/banners/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 3)

    def test_banner_management_requires_staff(self):
        self.client.force_authenticate(user=self.customer)

        response = self.client.post("/api/v1/admin/banners/", {"title": "Нове"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")

    def test_admin_creates_banner(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/admin/banners/",
            {"title": "Крафтове пиво", "link_url": "/catalog/beer", "link_text": "До каталогу", "sort_order": 5},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        banner = Banner.objects.get(id=response.json()["id"])
        self.assertEqual(banner.link_url, "/catalog/beer")
        self.assertTrue(banner.is_active)

    def test_reorder_updates_sort_order(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/admin/banners/reorder/",
            [
                {"id": str(self.summer.id), "sort_order": -1},
                {"id": str(self.cheese.id), "sort_order": 3},
            ],
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["title"] for item in response.json()], ["Літо", "Чернетка", "Тиждень сирів"])
        self.cheese.refresh_from_db()
        self.assertEqual(self.cheese.sort_order, 3)

    def test_reorder_with_unknown_banner_changes_nothing(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/admin/banners/reorder/",
            [
                {"id": str(self.summer.id), "sort_order": 9},
                {"id": "00000000-0000-0000-0000-000000000000", "sort_order": 1},
            ],
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("id", response.json()["errors"])
        self.summer.refresh_from_db()
        self.assertEqual(self.summer.sort_order, 2)


@override_settings(SHOP_NAME="Opillia Shop")
class SiteConfigApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="config-admin", password="pass1234", is_staff=True)
        self.customer = user_model.objects.create_user(username="config-user", password="pass1234")

    def test_public_read_creates_defaults_once(self):
        first = self.client.get("/api/v1/site-config/")
        second = self.client.get("/api/v1/site-config/")

        self.assertEqual(first.status_code, 200)
        payload = first.json()
        self.assertEqual(payload["site_name"], "Opillia Shop")
        self.assertEqual(payload["currency"], "UAH")
        self.assertEqual(payload["homepage_type"], "landing")
        self.assertEqual(second.json(), payload)
        self.assertEqual(SiteConfig.objects.count(), 1)

    def test_admin_patch_updates_fields(self):
        self.client.force_authenticate(user=self.admin)

        with self.assertLogs("content.views", level="INFO"):
            response = self.client.patch(
                "/api/v1/site-config/",
                {"company_phone": "+38 (097) 324 46 68", "social_links": {"telegram": "https://t.me/shop"}},
                format="json",
            )

        self.assertEqual(response.status_code, 200)
        config = SiteConfig.load()
        self.assertEqual(config.company_phone, "+38 (097) 324 46 68")
        self.assertEqual(config.social_links, {"telegram": "https://t.me/shop"})
        self.assertEqual(config.site_name, "Opillia Shop")

    def test_update_requires_staff(self):
        self.client.force_authenticate(user=self.customer)

        response = self.client.patch("/api/v1/site-config/", {"site_name": "Hijacked"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")

    def test_invalid_values_use_error_envelope(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            "/api/v1/site-config/",
            {"homepage_type": "portal", "social_links": ["https://t.me/shop"]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("homepage_type", payload["errors"])
        self.assertIn("social_links", payload["errors"])
