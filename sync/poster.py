"""Read-only client for the Poster POS HTTP API.

Responses are parsed into typed records here so the reconciliation code never
deals with Poster's loosely typed JSON. No retries happen at this layer.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import requests
from django.conf import settings

from common.utils import to_decimal

logger = logging.getLogger(__name__)


class RemoteError(Exception):
    """Base class for failures talking to Poster."""

    def __init__(self, message: str, *, method: str | None = None):
        self.method = method
        super().__init__(message)


class RemoteUnavailable(RemoteError):
    """Network failure, timeout or a 5xx from Poster."""


class RemoteProtocolError(RemoteError):
    """Poster answered, but not with the shape we expect."""


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value) -> str | None:
    return _text(value) or None


def _flag(value) -> bool:
    return _text(value) in {"1", "true", "True"}


def photo_url(photo: str | None, photo_origin: str | None, media_host: str) -> str | None:
    """Absolute URL of a Poster product photo; `photo_origin` is the full-size variant."""
    if not photo:
        return None
    path = photo_origin or photo
    if path.startswith(("http://", "https://")):
        return path
    return f"{media_host.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class RemoteCategory:
    remote_id: str
    name: str
    sort_order: int = 0
    is_hidden: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemoteCategory | None:
        remote_id = _text(payload.get("category_id"))
        if not remote_id:
            return None
        # Older menu exports use "sort" instead of "sort_order".
        sort_raw = payload.get("sort_order", payload.get("sort"))
        return cls(
            remote_id=remote_id,
            name=_text(payload.get("category_name")) or f"Category {remote_id}",
            sort_order=int(to_decimal(sort_raw)),
            is_hidden=_flag(payload.get("category_hidden")),
        )


@dataclass(frozen=True)
class RemoteProduct:
    remote_id: str
    name: str
    category_remote_id: str | None = None
    price: Any = None
    ingredient_id: str | None = None
    ingredient_unit: str | None = None
    description: str = ""
    photo: str | None = None
    photo_origin: str | None = None
    is_out: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemoteProduct | None:
        remote_id = _text(payload.get("product_id"))
        if not remote_id:
            return None
        ingredients = payload.get("ingredients")
        photo = _optional_text(payload.get("photo"))
        return cls(
            remote_id=remote_id,
            name=_text(payload.get("product_name")) or f"Product {remote_id}",
            category_remote_id=_optional_text(payload.get("menu_category_id") or payload.get("category_id")),
            price=payload.get("price"),
            ingredient_id=_optional_text(payload.get("ingredient_id")),
            ingredient_unit=_optional_text(payload.get("ingredient_unit")),
            description=ingredients.strip() if isinstance(ingredients, str) else "",
            photo=None if photo == "0" else photo,
            photo_origin=_optional_text(payload.get("photo_origin")),
            is_out=_flag(payload.get("out")),
        )

    @property
    def has_photo(self) -> bool:
        return bool(self.photo)

    def remote_image_url(self, media_host: str) -> str | None:
        return photo_url(self.photo, self.photo_origin, media_host)


@dataclass(frozen=True)
class RemoteStorage:
    remote_id: str
    name: str
    address: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemoteStorage | None:
        remote_id = _text(payload.get("storage_id"))
        if not remote_id:
            return None
        return cls(
            remote_id=remote_id,
            name=_text(payload.get("storage_name")) or f"Storage {remote_id}",
            # Poster spells it "storage_adress".
            address=_optional_text(payload.get("storage_adress") or payload.get("storage_address")),
        )


@dataclass(frozen=True)
class RemoteLeftover:
    ingredient_id: str
    quantity: Decimal = field(default_factory=lambda: Decimal("0"))
    unit: str = "pcs"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemoteLeftover | None:
        ingredient_id = _text(payload.get("ingredient_id"))
        if not ingredient_id:
            return None
        quantity = to_decimal(payload.get("storage_ingredient_left"))
        return cls(
            ingredient_id=ingredient_id,
            quantity=max(quantity, Decimal("0")),
            unit=_text(payload.get("ingredient_unit")) or "pcs",
        )


class PosterClient:
    """Thin GET client; use as a context manager so the session gets closed."""

    def __init__(self, base_url: str, token: str, *, timeout: float = 30.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, session: requests.Session | None = None) -> PosterClient:
        return cls(
            settings.POSTER_API_BASE,
            settings.POSTER_API_TOKEN,
            timeout=settings.POSTER_REQUEST_TIMEOUT,
            session=session,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.session.close()

    def fetch_categories(self) -> list[RemoteCategory]:
        return self._parse_all("menu.getCategories", RemoteCategory, self._get("menu.getCategories"))

    def fetch_products(self) -> list[RemoteProduct]:
        return self._parse_all("menu.getProducts", RemoteProduct, self._get("menu.getProducts"))

    def fetch_storages(self) -> list[RemoteStorage]:
        return self._parse_all("storage.getStorages", RemoteStorage, self._get("storage.getStorages"))

    def fetch_storage_leftovers(self, storage_remote_id: str) -> list[RemoteLeftover]:
        rows = self._get("storage.getStorageLeftovers", storage_id=storage_remote_id)
        return self._parse_all("storage.getStorageLeftovers", RemoteLeftover, rows)

    def _get(self, method: str, **params) -> list[Mapping[str, Any]]:
        url = f"{self.base_url}/{method}"
        try:
            response = self.session.get(url, params={"token": self.token, **params}, timeout=self.timeout)
        except requests.Timeout as exc:
            raise RemoteUnavailable(f"Poster {method} timed out", method=method) from exc
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"Poster {method} request failed: {exc}", method=method) from exc

        if response.status_code >= 500:
            raise RemoteUnavailable(f"Poster {method} returned HTTP {response.status_code}", method=method)
        if response.status_code >= 400:
            raise RemoteProtocolError(f"Poster {method} returned HTTP {response.status_code}", method=method)

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteProtocolError(f"Poster {method} returned a non-JSON body", method=method) from exc

        if not isinstance(body, Mapping):
            raise RemoteProtocolError(f"Poster {method} returned {type(body).__name__}, expected an object", method=method)
        if body.get("error"):
            raise RemoteProtocolError(f"Poster {method} error: {body['error']}", method=method)

        rows = body.get("response")
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise RemoteProtocolError(f"Poster {method} 'response' is not a list", method=method)
        return rows

    @staticmethod
    def _parse_all(method, record_cls, rows):
        records = []
        for row in rows:
            record = record_cls.from_payload(row) if isinstance(row, Mapping) else None
            if record is None:
                logger.warning("poster_record_dropped method=%s row=%r", method, row)
                continue
            records.append(record)
        return records
