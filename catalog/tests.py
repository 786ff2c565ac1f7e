from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from catalog.models import Category, Product, ProductInventory
from core.models import Branch


class CatalogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="catalog-admin", password="pass1234", is_staff=True)
        self.customer = user_model.objects.create_user(username="catalog-user", password="pass1234")

        self.center = Branch.objects.create(remote_storage_id="1", name="Центр")
        self.podil = Branch.objects.create(remote_storage_id="2", name="Поділ")

        self.cheese = Category.objects.create(remote_category_id="10", name="Сири", sort_order=1)
        self.drinks = Category.objects.create(remote_category_id="20", name="Напої", sort_order=2)
        Category.objects.create(name="Архів", sort_order=3, is_active=False)

        self.parmesan = Product.objects.create(
            category=self.cheese,
            name="Сир пармезан",
            price=Decimal("155.50"),
            attributes={"ingredient_unit": "kg"},
        )
        self.brie = Product.objects.create(category=self.cheese, name="Брі", display_name="Сир брі", price=Decimal("210.00"))
        self.beer = Product.objects.create(category=self.drinks, name="Пиво світле", price=Decimal("42.00"))
        Product.objects.create(category=self.cheese, name="Знятий", price=Decimal("1.00"), is_active=False)

        ProductInventory.objects.create(product=self.parmesan, branch=self.center, quantity=Decimal("2.500"), unit="kg")
        ProductInventory.objects.create(product=self.brie, branch=self.center, quantity=0)
        ProductInventory.objects.create(product=self.beer, branch=self.podil, quantity=12)

    def test_public_categories_are_active_and_counted(self):
        response = self.client.get("/api/v1/categories/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual([item["name"] for item in payload], ["Сири", "Напої"])
        self.assertEqual(payload[0]["product_count"], 2)
        self.assertEqual(payload[1]["product_count"], 1)

    def test_public_products_hide_inactive_items(self):
        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["count"], 3)
        names = {item["name"] for item in payload["results"]}
        self.assertNotIn("Знятий", names)

    def test_products_expose_inventory_per_branch(self):
        response = self.client.get(f"/api/v1/products/{self.parmesan.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["ingredient_unit"], "kg")
        self.assertEqual(payload["inventory"], [
            {
                "branch": str(self.center.id),
                "branch_name": "Центр",
                "quantity": "2.500",
                "unit": "kg",
                "updated_at": payload["inventory"][0]["updated_at"],
            }
        ])

    def test_filter_by_category(self):
        response = self.client.get("/api/v1/products/", {"category": str(self.drinks.id)})

        self.assertEqual([item["name"] for item in response.json()["results"]], ["Пиво світле"])

    def test_filter_by_branch_keeps_only_products_in_stock(self):
        response = self.client.get("/api/v1/products/", {"branch": str(self.center.id)})

        self.assertEqual([item["name"] for item in response.json()["results"]], ["Сир пармезан"])

    def test_search_matches_name_and_display_name(self):
        response = self.client.get("/api/v1/products/", {"search": "Сир"})

        names = {item["name"] for item in response.json()["results"]}
        self.assertEqual(names, {"Сир пармезан", "Брі"})

    def test_invalid_uuid_filter_returns_validation_error(self):
        response = self.client.get("/api/v1/products/", {"branch": "not-a-uuid"})

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("branch", payload["errors"])

    def test_admin_catalog_requires_staff(self):
        anonymous = self.client.get("/api/v1/admin/products/")
        self.assertEqual(anonymous.status_code, 401)

        self.client.force_authenticate(user=self.customer)
        forbidden = self.client.get("/api/v1/admin/products/")
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.json()["code"], "permission_denied")

    def test_admin_can_edit_product_and_blank_remote_ids_become_null(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/admin/products/{self.brie.id}/",
            {"display_name": "Брі французький", "remote_product_id": "", "price": "199.90"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.brie.refresh_from_db()
        self.assertEqual(self.brie.display_name, "Брі французький")
        self.assertIsNone(self.brie.remote_product_id)
        self.assertEqual(self.brie.price, Decimal("199.90"))

    def test_admin_rejects_negative_price(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/admin/products/{self.brie.id}/", {"price": "-1"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("price", response.json()["errors"])

    def test_admin_sees_inactive_categories(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/categories/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 3)

    def test_availability_reports_stock_in_branch(self):
        response = self.client.get(f"/api/v1/products/{self.parmesan.id}/availability/{self.center.id}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "product_id": str(self.parmesan.id),
                "product_name": "Сир пармезан",
                "branch_id": str(self.center.id),
                "branch_name": "Центр",
                "is_available": True,
                "available_quantity": "2.500",
                "unit": "kg",
            },
        )

    def test_availability_without_inventory_row_is_zero(self):
        response = self.client.get(f"/api/v1/products/{self.parmesan.id}/availability/{self.podil.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertFalse(payload["is_available"])
        self.assertEqual(payload["available_quantity"], "0.000")
        self.assertEqual(payload["unit"], "pcs")

    def test_availability_with_zero_stock_is_unavailable(self):
        response = self.client.get(f"/api/v1/products/{self.brie.id}/availability/{self.center.id}/")

        self.assertFalse(response.json()["is_available"])
        self.assertEqual(response.json()["product_name"], "Сир брі")

    def test_availability_for_unknown_branch_or_product_is_not_found(self):
        missing = "00000000-0000-0000-0000-000000000000"

        unknown_branch = self.client.get(f"/api/v1/products/{self.parmesan.id}/availability/{missing}/")
        malformed_branch = self.client.get(f"/api/v1/products/{self.parmesan.id}/availability/nope/")
        unknown_product = self.client.get(f"/api/v1/products/{missing}/availability/{self.center.id}/")

        for response in (unknown_branch, malformed_branch, unknown_product):
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["code"], "not_found")
        self.assertEqual(unknown_branch.json()["message"], "Branch not found.")
