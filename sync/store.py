from __future__ import annotations

from decimal import Decimal

from django.db import models, transaction

from catalog.models import Category, Product, ProductInventory
from core.models import Branch


class CatalogStore:
    """ORM access used by the synchronizer.

    Constructed explicitly and handed to :class:`sync.services.CatalogSynchronizer`
    so tests (and other callers) can substitute or wrap it.
    """

    def __init__(self, using: str = "default"):
        self.using = using

    def atomic(self):
        return transaction.atomic(using=self.using)

    def _manager(self, model: type[models.Model]):
        return model.objects.using(self.using)

    # Generic primitives

    def find(self, model, **filters):
        return list(self._manager(model).filter(**filters))

    def first(self, model, *, order_by=(), **filters):
        queryset = self._manager(model).filter(**filters)
        if order_by:
            queryset = queryset.order_by(*order_by)
        return queryset.first()

    def insert(self, model, **fields):
        return self._manager(model).create(**fields)

    def update(self, instance, **fields):
        for name, value in fields.items():
            setattr(instance, name, value)
        instance.save(using=self.using)
        return instance

    def delete(self, instance):
        instance.delete(using=self.using)

    def upsert(self, model, lookup: dict, defaults: dict):
        """Update the row matching `lookup` or insert it; returns (instance, created)."""
        return self._manager(model).update_or_create(defaults=defaults, **lookup)

    # Catalog lookups

    def category_by_remote_id(self, remote_category_id: str) -> Category | None:
        return self.first(Category, remote_category_id=remote_category_id)

    def fallback_category(self) -> Category | None:
        return self.first(Category, order_by=("sort_order", "created_at"))

    def upsert_category(self, remote_category_id: str, defaults: dict):
        return self.upsert(Category, {"remote_category_id": remote_category_id}, defaults)

    def upsert_product(self, remote_product_id: str, defaults: dict):
        return self.upsert(Product, {"remote_product_id": remote_product_id}, defaults)

    def upsert_branch(self, remote_storage_id: str, defaults: dict):
        return self.upsert(Branch, {"remote_storage_id": remote_storage_id}, defaults)

    def upsert_inventory(self, product: Product, branch: Branch, quantity: Decimal, unit: str):
        return self.upsert(
            ProductInventory,
            {"product": product, "branch": branch},
            {"quantity": quantity, "unit": unit},
        )

    def active_branches(self) -> list[Branch]:
        return self.find(Branch, is_active=True, remote_storage_id__isnull=False)

    def active_products(self) -> list[Product]:
        return self.find(Product, is_active=True)

    def products_with_remote_ids(self) -> list[Product]:
        return self.find(Product, is_active=True, remote_product_id__isnull=False)

    def set_product_image(self, product: Product, path: str):
        return self.update(product, image_url=path, display_image_url=path)
