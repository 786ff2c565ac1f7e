import uuid

from django.conf import settings
from django.db import models


class SyncRun(models.Model):
    """Audit row for one synchronization against Poster."""

    class Trigger(models.TextChoices):
        FULL = "full", "Full sync"
        INVENTORY = "inventory", "Inventory only"
        IMAGES = "images", "Image backfill"

    class Source(models.TextChoices):
        API = "api", "API"
        COMMAND = "command", "Management command"

    class Status(models.TextChoices):
        RUNNING = "running", "Running"
        SUCCEEDED = "succeeded", "Succeeded"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    trigger = models.CharField(max_length=16, choices=Trigger.choices, default=Trigger.FULL)
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.API)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.RUNNING)
    categories = models.PositiveIntegerField(default=0)
    products = models.PositiveIntegerField(default=0)
    branches = models.PositiveIntegerField(default=0)
    inventory = models.PositiveIntegerField(default=0)
    skipped = models.PositiveIntegerField(default=0)
    errors = models.JSONField(default=list, blank=True)
    message = models.TextField(blank=True, default="")
    failed_phase = models.CharField(max_length=32, blank=True, default="")
    triggered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sync_runs",
    )
    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at"]
        indexes = [
            models.Index(fields=["trigger", "started_at"], name="syncrun_trigger_started_idx"),
            models.Index(fields=["status"], name="syncrun_status_idx"),
        ]

    def __str__(self):
        return f"{self.trigger} {self.status} @ {self.started_at:%Y-%m-%d %H:%M}"
