"""Catalog reconciliation against Poster.

A full run has four sequential phases: categories, products, branches and
inventory. Each phase fetches its own remote collection first; a remote
failure at that point stops the run. Failures of individual items are
recorded on the summary and never affect their siblings.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from common.utils import to_decimal
from sync.images import ImageRequest, ProductImageCache
from sync.models import SyncRun
from sync.normalization import DEFAULT_UNIT, classify, default_retail_step, normalize_price
from sync.poster import PosterClient, RemoteCategory, RemoteError, RemoteProduct, RemoteStorage, photo_url
from sync.store import CatalogStore

logger = logging.getLogger(__name__)

PHASE_CATEGORIES = "categories"
PHASE_PRODUCTS = "products"
PHASE_BRANCHES = "branches"
PHASE_INVENTORY = "inventory"


class ItemReconciliationError(Exception):
    """A single category, product, branch or inventory row could not be reconciled."""

    def __init__(self, kind: str, label: str, cause: Exception):
        self.kind = kind
        self.label = label
        self.cause = cause
        super().__init__(f"{kind} {label}: {cause}")


class PhaseFetchError(Exception):
    def __init__(self, phase: str, cause: RemoteError):
        self.phase = phase
        self.cause = cause
        super().__init__(f"{phase}: {cause}")


@dataclass
class SyncSummary:
    success: bool = True
    categories: int = 0
    products: int = 0
    branches: int = 0
    inventory: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    failed_phase: str | None = None
    message: str = ""

    def as_dict(self) -> dict:
        return {
            "categories": self.categories,
            "products": self.products,
            "branches": self.branches,
            "inventory": self.inventory,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class CatalogSynchronizer:
    def __init__(
        self,
        client: PosterClient,
        store: CatalogStore,
        images: ProductImageCache,
        branch_defaults: Mapping[str, str] | None = None,
    ):
        self.client = client
        self.store = store
        self.images = images
        self.branch_defaults = dict(branch_defaults or {})

    def run(self) -> SyncSummary:
        summary = SyncSummary()
        try:
            category_map = self.sync_categories(summary)
            products = self.sync_products(summary, category_map)
            branches = self.sync_branches(summary)
            self.sync_inventory(summary, branches, products)
        except PhaseFetchError as exc:
            summary.success = False
            summary.failed_phase = exc.phase
            summary.message = f"Full sync failed while fetching {exc.phase}: {exc.cause}"
            logger.error("sync_phase_fetch_failed error=%s", exc.cause, extra={"phase": exc.phase})
            return summary

        summary.message = "Full sync completed"
        if summary.errors:
            summary.message = f"Full sync completed with {len(summary.errors)} error(s)"
        return summary

    # Phases

    def sync_categories(self, summary: SyncSummary) -> dict:
        remote_categories = self._fetch(PHASE_CATEGORIES, self.client.fetch_categories)
        category_map = {}
        for remote in remote_categories:
            category = self._reconcile_item(
                summary, PHASE_CATEGORIES, "Category", remote.name, remote.remote_id,
                lambda remote=remote: self._upsert_category(remote),
            )
            if category is not None:
                category_map[remote.remote_id] = category
                summary.categories += 1
        self._phase_completed(PHASE_CATEGORIES, summary.categories)
        return category_map

    def sync_products(self, summary: SyncSummary, category_map: Mapping | None = None) -> list:
        remote_products = self._fetch(PHASE_PRODUCTS, self.client.fetch_products)
        category_map = category_map or {}
        products = []
        for remote in remote_products:
            category = self._resolve_category(remote, category_map)
            if category is None:
                summary.skipped += 1
                logger.warning(
                    "sync_product_skipped_no_category name=%s",
                    remote.name,
                    extra={"phase": PHASE_PRODUCTS, "remote_id": remote.remote_id},
                )
                continue
            image = self._resolve_image(remote)
            product = self._reconcile_item(
                summary, PHASE_PRODUCTS, "Product", remote.name, remote.remote_id,
                lambda remote=remote, category=category, image=image: self._upsert_product(remote, category, image),
            )
            if product is not None:
                products.append(product)
                summary.products += 1
        self._phase_completed(PHASE_PRODUCTS, summary.products, skipped=summary.skipped)
        return products

    def sync_branches(self, summary: SyncSummary) -> list:
        remote_storages = self._fetch(PHASE_BRANCHES, self.client.fetch_storages)
        branches = []
        for remote in remote_storages:
            branch = self._reconcile_item(
                summary, PHASE_BRANCHES, "Branch", remote.name, remote.remote_id,
                lambda remote=remote: self._upsert_branch(remote),
            )
            if branch is not None:
                branches.append(branch)
                summary.branches += 1
        self._phase_completed(PHASE_BRANCHES, summary.branches)
        return branches

    def sync_inventory(self, summary: SyncSummary, branches, products) -> None:
        for branch in branches:
            try:
                leftovers = self.client.fetch_storage_leftovers(branch.remote_storage_id)
            except RemoteError as exc:
                summary.errors.append(str(ItemReconciliationError("Inventory", branch.name, exc)))
                logger.warning(
                    "sync_branch_inventory_skipped branch=%s error=%s",
                    branch.name,
                    exc,
                    extra={"phase": PHASE_INVENTORY, "remote_id": branch.remote_storage_id},
                )
                continue

            stock = {leftover.ingredient_id: leftover for leftover in leftovers}
            for product in products:
                leftover = stock.get(product.remote_ingredient_id) if product.remote_ingredient_id else None
                if leftover is not None:
                    quantity, unit = leftover.quantity, leftover.unit
                else:
                    quantity, unit = Decimal("0"), product.ingredient_unit or DEFAULT_UNIT
                row = self._reconcile_item(
                    summary, PHASE_INVENTORY, "Inventory", f"{product.name} @ {branch.name}", product.remote_product_id,
                    lambda product=product, quantity=quantity, unit=unit: self._upsert_inventory(product, branch, quantity, unit),
                )
                if row is not None:
                    summary.inventory += 1
        self._phase_completed(PHASE_INVENTORY, summary.inventory)

    # Supplementary runs

    def sync_inventory_only(self) -> SyncSummary:
        """Refresh stock for every active branch and active product already stored."""
        summary = SyncSummary()
        branches = self.store.active_branches()
        products = self.store.active_products()
        summary.branches = len(branches)
        summary.products = len(products)
        self.sync_inventory(summary, branches, products)
        summary.message = "Inventory sync completed"
        if summary.errors:
            summary.message = f"Inventory sync completed with {len(summary.errors)} error(s)"
        return summary

    def backfill_images(self) -> SyncSummary:
        """Cache photos for stored products and point them at the local files."""
        summary = SyncSummary()
        products = {product.remote_product_id: product for product in self.store.products_with_remote_ids()}
        pending = [self._image_request(product) for product in products.values()]
        for result in self.images.cache_many(pending):
            product = products[result.remote_product_id]
            if not result.local_path:
                summary.skipped += 1
                continue
            if product.image_url == result.local_path and product.display_image_url == result.local_path:
                continue
            updated = self._reconcile_item(
                summary, "images", "Product", product.name, result.remote_product_id,
                lambda product=product, path=result.local_path: self._set_image(product, path),
            )
            if updated is not None:
                summary.products += 1
        summary.message = f"Cached images for {summary.products} product(s)"
        return summary

    # Item handlers

    def _upsert_category(self, remote: RemoteCategory):
        category, _ = self.store.upsert_category(
            remote.remote_id,
            {
                "name": remote.name,
                "display_name": remote.name,
                "sort_order": remote.sort_order,
                "is_active": not remote.is_hidden,
            },
        )
        return category

    def _resolve_category(self, remote: RemoteProduct, category_map: Mapping):
        if remote.category_remote_id:
            category = category_map.get(remote.category_remote_id)
            if category is None:
                category = self.store.category_by_remote_id(remote.category_remote_id)
            if category is not None:
                return category
        return self.store.fallback_category()

    def _resolve_image(self, remote: RemoteProduct) -> str:
        # Network I/O; callers keep it outside the item savepoint.
        remote_url = remote.remote_image_url(self.images.media_host)
        local_path = self.images.resolve_and_cache(remote.remote_id, remote.has_photo, remote_url)
        return local_path or remote_url or ""

    def _upsert_product(self, remote: RemoteProduct, category, image: str):
        classification = classify(remote.name, remote.ingredient_unit)
        price = normalize_price(remote.price, classification)
        step = default_retail_step(classification)

        product, _ = self.store.upsert_product(
            remote.remote_id,
            {
                "remote_ingredient_id": remote.ingredient_id,
                "category": category,
                "name": remote.name,
                "display_name": remote.name,
                "description": remote.description,
                "price": price,
                "original_price": price,
                "image_url": image,
                "display_image_url": image,
                "is_active": not remote.is_out,
                "custom_quantity": step.quantity if step else None,
                "custom_unit": step.unit if step else None,
                "quantity_step": step.step if step else None,
                "attributes": {
                    "ingredient_unit": remote.ingredient_unit or DEFAULT_UNIT,
                    "ingredient_id": remote.ingredient_id,
                    "classification": classification.value,
                    "out": remote.is_out,
                    "photo": remote.photo,
                    "photo_origin": remote.photo_origin,
                },
            },
        )
        return product

    def _upsert_branch(self, remote: RemoteStorage):
        defaults = self.branch_defaults
        branch, created = self.store.upsert_branch(
            remote.remote_id,
            {
                "name": remote.name,
                "address": remote.address or f"Storage {remote.remote_id}",
                "is_active": True,
            },
        )
        # Contact details are only seeded; staff edit them locally afterwards.
        missing = {}
        if not branch.phone and defaults.get("phone"):
            missing["phone"] = defaults["phone"]
        if not branch.working_hours and defaults.get("working_hours"):
            missing["working_hours"] = defaults["working_hours"]
        if branch.latitude is None and defaults.get("latitude"):
            missing["latitude"] = to_decimal(defaults["latitude"], default=None)
        if branch.longitude is None and defaults.get("longitude"):
            missing["longitude"] = to_decimal(defaults["longitude"], default=None)
        if missing:
            self.store.update(branch, **missing)
        return branch

    def _upsert_inventory(self, product, branch, quantity, unit):
        row, _ = self.store.upsert_inventory(product, branch, quantity, unit)
        return row

    def _set_image(self, product, path):
        return self.store.set_product_image(product, path)

    def _image_request(self, product) -> ImageRequest:
        attributes = product.attributes or {}
        photo = attributes.get("photo")
        return ImageRequest(
            product.remote_product_id,
            has_remote_photo=bool(photo),
            known_remote_url=photo_url(photo, attributes.get("photo_origin"), self.images.media_host),
        )

    # Helpers

    def _phase_completed(self, phase: str, count: int, skipped: int = 0):
        logger.info("sync_phase_completed count=%s skipped=%s", count, skipped, extra={"phase": phase})

    def _fetch(self, phase: str, fetcher: Callable[[], list]):
        try:
            return fetcher()
        except RemoteError as exc:
            raise PhaseFetchError(phase, exc) from exc

    def _reconcile_item(self, summary: SyncSummary, phase: str, kind: str, label: str, remote_id, handler):
        try:
            with self.store.atomic():
                return handler()
        except Exception as exc:
            error = ItemReconciliationError(kind, label, exc)
            summary.errors.append(str(error))
            logger.exception("sync_item_failed", extra={"phase": phase, "remote_id": remote_id})
            return None


def build_synchronizer(store: CatalogStore | None = None) -> CatalogSynchronizer:
    return CatalogSynchronizer(
        PosterClient.from_settings(),
        store or CatalogStore(),
        ProductImageCache.from_settings(),
        branch_defaults=settings.SYNC_BRANCH_DEFAULTS,
    )


def _close(synchronizer: CatalogSynchronizer):
    synchronizer.client.close()
    synchronizer.images.close()


RUNNERS = {
    SyncRun.Trigger.FULL: CatalogSynchronizer.run,
    SyncRun.Trigger.INVENTORY: CatalogSynchronizer.sync_inventory_only,
    SyncRun.Trigger.IMAGES: CatalogSynchronizer.backfill_images,
}


def run_full_sync(trigger=SyncRun.Trigger.FULL, user=None, synchronizer: CatalogSynchronizer | None = None, *, source: str = SyncRun.Source.API):
    """Execute one synchronization of kind `trigger` and record it as a SyncRun.

    Returns ``(sync_run, summary)``. The run row is written before any remote
    call so an interrupted process still leaves a trace in ``status=running``.
    """
    owns_synchronizer = synchronizer is None
    synchronizer = synchronizer or build_synchronizer()
    sync_run = SyncRun.objects.create(
        trigger=trigger,
        source=source,
        triggered_by=user if user is not None and user.is_authenticated else None,
    )
    logger.info("sync_run_started trigger=%s", trigger, extra={"sync_run_id": sync_run.id})

    try:
        summary = RUNNERS[trigger](synchronizer)
    except Exception:
        sync_run.status = SyncRun.Status.FAILED
        sync_run.message = "Sync crashed; see server logs."
        sync_run.finished_at = timezone.now()
        sync_run.save(update_fields=["status", "message", "finished_at"])
        logger.exception("sync_run_crashed", extra={"sync_run_id": sync_run.id})
        raise
    finally:
        if owns_synchronizer:
            _close(synchronizer)

    sync_run.status = SyncRun.Status.SUCCEEDED if summary.success else SyncRun.Status.FAILED
    sync_run.categories = summary.categories
    sync_run.products = summary.products
    sync_run.branches = summary.branches
    sync_run.inventory = summary.inventory
    sync_run.skipped = summary.skipped
    sync_run.errors = summary.errors
    sync_run.failed_phase = summary.failed_phase or ""
    sync_run.message = summary.message
    sync_run.finished_at = timezone.now()
    sync_run.save()

    logger.info(
        "sync_run_finished status=%s categories=%s products=%s branches=%s inventory=%s errors=%s",
        sync_run.status,
        summary.categories,
        summary.products,
        summary.branches,
        summary.inventory,
        len(summary.errors),
        extra={"sync_run_id": sync_run.id},
    )
    return sync_run, summary
