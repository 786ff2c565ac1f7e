from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import Branch


class BranchApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="core-admin", password="pass1234", is_staff=True)
        self.customer = user_model.objects.create_user(username="core-user", password="pass1234")

        self.center = Branch.objects.create(remote_storage_id="1", name="Центр", address="вул. Хрещатик, 1")
        self.closed = Branch.objects.create(remote_storage_id="2", name="Закритий", is_active=False)

    def test_public_branch_list_shows_active_branches(self):
        response = self.client.get("/api/v1/branches/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual([item["name"] for item in payload], ["Центр"])
        self.assertEqual(payload[0]["address"], "вул. Хрещатик, 1")

    def test_admin_branches_require_staff(self):
        self.client.force_authenticate(user=self.customer)

        response = self.client.get("/api/v1/admin/branches/")

        self.assertEqual(response.status_code, 403)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["code", "errors", "message", "status"])
        self.assertEqual(payload["code"], "permission_denied")
        self.assertIsNone(payload["errors"])

    def test_admin_can_update_branch_contacts(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/admin/branches/{self.closed.id}/",
            {"phone": "+380 44 000 00 00", "is_active": True, "pickup_available": False},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.closed.refresh_from_db()
        self.assertTrue(self.closed.is_active)
        self.assertFalse(self.closed.pickup_available)
        self.assertEqual(self.closed.phone, "+380 44 000 00 00")

    def test_blank_remote_storage_id_is_stored_as_null(self):
        self.client.force_authenticate(user=self.admin)

        first = self.client.post("/api/v1/admin/branches/", {"name": "Склад 1", "remote_storage_id": ""}, format="json")
        second = self.client.post("/api/v1/admin/branches/", {"name": "Склад 2", "remote_storage_id": ""}, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(Branch.objects.filter(remote_storage_id__isnull=True).count(), 2)

    def test_missing_branch_uses_error_envelope(self):
        response = self.client.get("/api/v1/branches/00000000-0000-0000-0000-000000000000/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")


class HealthCheckTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_healthz_echoes_request_id(self):
        response = self.client.get("/api/v1/healthz", HTTP_X_REQUEST_ID="req-123")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "request_id": "req-123"})
        self.assertEqual(response["X-Request-ID"], "req-123")

    def test_readyz_reports_database(self):
        response = self.client.get("/api/v1/readyz")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")

    def test_readyz_returns_503_when_database_is_down(self):
        with patch("core.views.connections") as connections:
            connections.__getitem__.return_value.cursor.side_effect = RuntimeError("db down")
            with self.assertLogs("core.views", level="ERROR"):
                response = self.client.get("/api/v1/readyz")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"], "db down")
