from django.core.management.base import BaseCommand, CommandError

from sync.models import SyncRun
from sync.services import run_full_sync


class Command(BaseCommand):
    help = "Synchronize categories, products, branches and stock from Poster."

    def add_arguments(self, parser):
        mode = parser.add_mutually_exclusive_group()
        mode.add_argument("--inventory-only", action="store_true", help="Only refresh stock for stored branches and products.")
        mode.add_argument("--images-only", action="store_true", help="Only cache product photos locally.")

    def handle(self, *args, **options):
        trigger = SyncRun.Trigger.FULL
        if options.get("inventory_only"):
            trigger = SyncRun.Trigger.INVENTORY
        elif options.get("images_only"):
            trigger = SyncRun.Trigger.IMAGES

        sync_run, summary = run_full_sync(trigger, source=SyncRun.Source.COMMAND)

        for error in summary.errors:
            self.stderr.write(error)

        if not summary.success:
            raise CommandError(f"{summary.message} (run {sync_run.id})")

        self.stdout.write(
            self.style.SUCCESS(
                f"{summary.message}: categories={summary.categories} products={summary.products} "
                f"branches={summary.branches} inventory={summary.inventory} skipped={summary.skipped} (run {sync_run.id})"
            )
        )
