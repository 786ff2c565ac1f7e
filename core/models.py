import uuid

from django.db import models


class Branch(models.Model):
    """A physical shop (a Poster storage) with its own stock."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    remote_storage_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=64, blank=True, default="")
    working_hours = models.CharField(max_length=128, blank=True, default="")
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    delivery_available = models.BooleanField(default=True)
    pickup_available = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active"], name="branch_active_idx"),
        ]

    def __str__(self):
        return self.name
