import tempfile
from contextlib import contextmanager
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from pathlib import Path
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from catalog.models import Category, Product, ProductInventory
from core.models import Branch
from sync.images import ImageRequest, ImageResult, ProductImageCache
from sync.models import SyncRun
from sync.normalization import Classification, classify, default_retail_step, normalize_price
from sync.poster import (
    PosterClient,
    RemoteCategory,
    RemoteLeftover,
    RemoteProduct,
    RemoteProtocolError,
    RemoteStorage,
    RemoteUnavailable,
)
from sync.services import CatalogSynchronizer, run_full_sync
from sync.store import CatalogStore

MEDIA_HOST = "https://joinposter.com"
PHOTO_PATH = "/upload/pos_cdb_214175/menu/product_1678785050_{}.jpeg"


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content

    def iter_content(self, chunk_size=1):
        yield self.content

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class InterruptedResponse(FakeResponse):
    """Streams one chunk, records the cache directory, then drops the connection."""

    def __init__(self, directory):
        super().__init__(200, b"")
        self.directory = directory
        self.files_mid_stream = None

    def iter_content(self, chunk_size=1):
        yield b"\x89PNG half"
        self.files_mid_stream = sorted(path.name for path in self.directory.iterdir())
        raise requests.ConnectionError("connection reset")


class FakeImageSession:
    """Serves `existing` URLs with 200 and everything else with 404."""

    def __init__(self, existing=(), content=b"\x89PNG fake"):
        self.existing = set(existing)
        self.content = content
        self.heads = []
        self.gets = []

    def head(self, url, timeout=None, allow_redirects=False):
        self.heads.append(url)
        return FakeResponse(200 if url in self.existing else 404)

    def get(self, url, stream=False, timeout=None):
        self.gets.append(url)
        if url in self.existing:
            return FakeResponse(200, self.content)
        return FakeResponse(404)

    def close(self):
        pass

    @property
    def network_calls(self):
        return len(self.heads) + len(self.gets)


class FakePosterClient:
    def __init__(self, categories=(), products=(), storages=(), leftovers=None, failures=None):
        self.categories = list(categories)
        self.products = list(products)
        self.storages = list(storages)
        self.leftovers = leftovers or {}
        self.failures = failures or {}
        self.closed = False

    def _maybe_fail(self, method):
        if method in self.failures:
            raise self.failures[method]

    def fetch_categories(self):
        self._maybe_fail("categories")
        return list(self.categories)

    def fetch_products(self):
        self._maybe_fail("products")
        return list(self.products)

    def fetch_storages(self):
        self._maybe_fail("storages")
        return list(self.storages)

    def fetch_storage_leftovers(self, storage_remote_id):
        stock = self.leftovers.get(storage_remote_id, [])
        if isinstance(stock, Exception):
            raise stock
        return list(stock)

    def close(self):
        self.closed = True


class FakeImageCache:
    media_host = MEDIA_HOST

    def __init__(self, paths=None):
        self.paths = paths or {}
        self.calls = []
        self.requests = []

    def resolve_and_cache(self, remote_product_id, has_remote_photo, known_remote_url=None):
        self.calls.append(remote_product_id)
        return self.paths.get(remote_product_id)

    def cache_many(self, items):
        items = list(items)
        self.requests.extend(items)
        return [ImageResult(item.remote_product_id, self.paths.get(item.remote_product_id)) for item in items]

    def close(self):
        pass


def make_product(remote_id, name=None, category="10", ingredient=None, unit="pcs", price="15500", **kwargs):
    return RemoteProduct(
        remote_id=remote_id,
        name=name or f"Item {remote_id}",
        category_remote_id=category,
        price=price,
        ingredient_id=ingredient or f"ing-{remote_id}",
        ingredient_unit=unit,
        **kwargs,
    )


class NormalizationTests(SimpleTestCase):
    def test_standard_price_is_divided_by_subunits_only(self):
        self.assertEqual(normalize_price("15500", Classification.STANDARD), Decimal("155.00"))

    def test_weight_based_price_is_converted_from_100g_to_kg(self):
        self.assertEqual(normalize_price("15500", Classification.WEIGHT_BASED), Decimal("15.50"))

    def test_beverage_weight_unit_price_is_not_divided_by_ten(self):
        self.assertEqual(normalize_price("15500", Classification.BEVERAGE_WEIGHT_UNIT), Decimal("155.00"))

    def test_price_tier_mapping_uses_first_tier(self):
        self.assertEqual(normalize_price({"1": "4200", "2": "9900"}, Classification.STANDARD), Decimal("42.00"))

    def test_garbage_and_negative_prices_become_zero(self):
        self.assertEqual(normalize_price("n/a", Classification.STANDARD), Decimal("0.00"))
        self.assertEqual(normalize_price(None, Classification.STANDARD), Decimal("0.00"))
        self.assertEqual(normalize_price("-500", Classification.STANDARD), Decimal("0.00"))

    def test_beverage_with_mass_unit_is_never_weight_based(self):
        self.assertEqual(classify("Пиво світле розливне", "kg"), Classification.BEVERAGE_WEIGHT_UNIT)
        self.assertEqual(classify("Craft Beer IPA", "g"), Classification.BEVERAGE_WEIGHT_UNIT)
        self.assertEqual(classify("Kvas domashnii", "kg"), Classification.BEVERAGE_WEIGHT_UNIT)

    def test_weighed_food_is_weight_based(self):
        self.assertEqual(classify("Ковбаса салямі", "kg"), Classification.WEIGHT_BASED)
        self.assertEqual(classify("Beef steak", "kg"), Classification.WEIGHT_BASED)

    def test_weighed_produce_named_like_drinks_is_not_a_beverage(self):
        self.assertEqual(classify("Виноград кишмиш", "kg"), Classification.WEIGHT_BASED)
        self.assertEqual(classify("Кавун херсонський", "kg"), Classification.WEIGHT_BASED)
        self.assertEqual(classify("Квасоля червона", "kg"), Classification.WEIGHT_BASED)
        self.assertEqual(classify("Watermelon", "kg"), Classification.WEIGHT_BASED)
        self.assertEqual(normalize_price("4500", classify("Виноград кишмиш", "kg")), Decimal("4.50"))

    def test_drink_mentioning_excluded_produce_is_still_a_beverage(self):
        self.assertEqual(classify("Вино з винограду Каберне", "kg"), Classification.BEVERAGE_WEIGHT_UNIT)
        self.assertEqual(classify("Сік кавуновий", "kg"), Classification.BEVERAGE_WEIGHT_UNIT)

    def test_non_mass_units_are_standard(self):
        self.assertEqual(classify("Пиво в пляшці", "pcs"), Classification.STANDARD)
        self.assertEqual(classify("Сир", None), Classification.STANDARD)

    def test_retail_step_defaults(self):
        self.assertIsNone(default_retail_step(Classification.STANDARD))
        step = default_retail_step(Classification.WEIGHT_BASED)
        self.assertEqual((step.quantity, step.unit), (Decimal("50"), "g"))
        step = default_retail_step(Classification.BEVERAGE_WEIGHT_UNIT)
        self.assertEqual((step.quantity, step.unit), (Decimal("0.5"), "l"))


class PosterClientTests(SimpleTestCase):
    def _client(self, body=None, status_code=200, side_effect=None):
        session = mock.Mock()
        if side_effect is not None:
            session.get.side_effect = side_effect
        else:
            session.get.return_value.status_code = status_code
            session.get.return_value.json.return_value = body
        return PosterClient("https://poster.test/api/", "secret", timeout=3, session=session), session

    def test_fetch_categories_parses_records_and_sends_token(self):
        client, session = self._client(
            {
                "response": [
                    {"category_id": "10", "category_name": "Сири", "sort_order": "2", "category_hidden": "0"},
                    {"category_id": "11", "category_name": "Hidden", "sort": "5", "category_hidden": "1"},
                ]
            }
        )

        categories = client.fetch_categories()

        self.assertEqual(
            categories,
            [RemoteCategory("10", "Сири", 2, False), RemoteCategory("11", "Hidden", 5, True)],
        )
        session.get.assert_called_once_with(
            "https://poster.test/api/menu.getCategories",
            params={"token": "secret"},
            timeout=3,
        )

    def test_rows_without_identifier_are_dropped(self):
        client, _ = self._client({"response": [{"product_name": "Ghost"}, "junk", {"product_id": "7", "product_name": "Real"}]})

        with self.assertLogs("sync.poster", level="WARNING") as logs:
            products = client.fetch_products()

        self.assertEqual([product.remote_id for product in products], ["7"])
        self.assertEqual(len(logs.records), 2)

    def test_product_payload_normalizes_photo_and_out_flags(self):
        client, _ = self._client(
            {
                "response": [
                    {"product_id": "1", "product_name": "A", "menu_category_id": "10", "photo": "0", "out": "1"},
                    {"product_id": "2", "product_name": "B", "photo": "/upload/x.png", "photo_origin": "/upload/x_orig.png"},
                ]
            }
        )

        first, second = client.fetch_products()

        self.assertFalse(first.has_photo)
        self.assertTrue(first.is_out)
        self.assertEqual(first.category_remote_id, "10")
        self.assertEqual(second.remote_image_url(MEDIA_HOST), "https://joinposter.com/upload/x_orig.png")

    def test_storage_leftovers_pass_storage_id_and_clamp_negative_stock(self):
        client, session = self._client(
            {"response": [{"ingredient_id": "5", "storage_ingredient_left": "-2.5", "ingredient_unit": "kg"}]}
        )

        leftovers = client.fetch_storage_leftovers("3")

        self.assertEqual(leftovers, [RemoteLeftover("5", Decimal("0"), "kg")])
        self.assertEqual(session.get.call_args.kwargs["params"], {"token": "secret", "storage_id": "3"})

    def test_missing_response_is_empty_list(self):
        client, _ = self._client({"response": None})
        self.assertEqual(client.fetch_storages(), [])

    def test_timeout_is_remote_unavailable(self):
        client, _ = self._client(side_effect=requests.Timeout("slow"))
        with self.assertRaises(RemoteUnavailable) as ctx:
            client.fetch_categories()
        self.assertEqual(ctx.exception.method, "menu.getCategories")

    def test_server_error_is_remote_unavailable(self):
        client, _ = self._client({}, status_code=503)
        with self.assertRaises(RemoteUnavailable):
            client.fetch_products()

    def test_error_body_is_protocol_error(self):
        client, _ = self._client({"error": 10, "message": "Access token is invalid"})
        with self.assertRaises(RemoteProtocolError):
            client.fetch_storages()

    def test_non_list_response_is_protocol_error(self):
        client, _ = self._client({"response": {"unexpected": True}})
        with self.assertRaises(RemoteProtocolError):
            client.fetch_categories()


class ProductImageCacheTests(SimpleTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.directory = Path(self.tmp.name)

    def _cache(self, session):
        return ProductImageCache(
            self.directory,
            "/media/images/products",
            media_host=MEDIA_HOST,
            upload_path="/upload/pos_cdb_214175/menu",
            session=session,
            batch_size=2,
            batch_delay=0,
        )

    def test_second_resolution_performs_no_network_calls(self):
        url = MEDIA_HOST + PHOTO_PATH.format("12")
        session = FakeImageSession(existing={url})
        cache = self._cache(session)

        first = cache.resolve_and_cache("12", True, url)
        second = cache.resolve_and_cache("12", True, url)

        self.assertEqual(first, "/media/images/products/product_12.jpeg")
        self.assertEqual(second, first)
        self.assertEqual(len(session.gets), 1)
        self.assertEqual((self.directory / "product_12.jpeg").read_bytes(), session.content)

    def test_already_cached_file_short_circuits(self):
        (self.directory / "product_9.webp").write_bytes(b"cached")
        session = FakeImageSession()

        path = self._cache(session).resolve_and_cache("9", True)

        self.assertEqual(path, "/media/images/products/product_9.webp")
        self.assertEqual(session.network_calls, 0)

    def test_candidate_urls_find_known_upload_pattern(self):
        url = f"{MEDIA_HOST}/upload/pos_cdb_214175/menu/product_1717493132_44.png"
        session = FakeImageSession(existing={url})

        path = self._cache(session).resolve_and_cache("44", True)

        self.assertEqual(path, "/media/images/products/product_44.png")
        self.assertEqual(session.gets, [url])

    def test_no_photo_flag_and_no_url_skips_network(self):
        session = FakeImageSession()
        self.assertIsNone(self._cache(session).resolve_and_cache("5", False))
        self.assertEqual(session.network_calls, 0)

    def test_rejected_download_leaves_no_file(self):
        session = FakeImageSession()

        with self.assertLogs("sync.images", level="WARNING"):
            path = self._cache(session).resolve_and_cache("6", True, MEDIA_HOST + "/upload/missing.jpg")

        self.assertIsNone(path)
        self.assertEqual(list(self.directory.iterdir()), [])

    def test_interrupted_download_never_exposes_a_cached_file(self):
        url = MEDIA_HOST + PHOTO_PATH.format("21")
        broken = FakeImageSession(existing={url})
        interrupted = InterruptedResponse(self.directory)
        broken.get = mock.Mock(return_value=interrupted)

        with self.assertLogs("sync.images", level="WARNING"):
            self.assertIsNone(self._cache(broken).resolve_and_cache("21", True, url))

        self.assertNotIn("product_21.jpeg", interrupted.files_mid_stream)
        self.assertEqual(len(interrupted.files_mid_stream), 1)
        self.assertTrue(interrupted.files_mid_stream[0].endswith(".part"))
        self.assertEqual(list(self.directory.iterdir()), [])

        healthy = FakeImageSession(existing={url})
        path = self._cache(healthy).resolve_and_cache("21", True, url)

        self.assertEqual(path, "/media/images/products/product_21.jpeg")
        self.assertEqual(len(healthy.gets), 1)
        self.assertEqual((self.directory / "product_21.jpeg").read_bytes(), healthy.content)

    def test_partial_file_left_by_killed_process_is_not_a_cache_hit(self):
        (self.directory / ".product_7.jpeg.k2x9q1.part").write_bytes(b"")
        url = MEDIA_HOST + PHOTO_PATH.format("7")
        session = FakeImageSession(existing={url})

        with self.assertLogs("sync.images", level="DEBUG") as logs:
            path = self._cache(session).resolve_and_cache("7", True, url)

        self.assertEqual(path, "/media/images/products/product_7.jpeg")
        self.assertEqual(session.gets, [url])
        self.assertEqual((self.directory / "product_7.jpeg").read_bytes(), session.content)
        self.assertTrue(any("image_cache_miss" in line for line in logs.output))

    def test_existing_final_file_wins_over_concurrent_download(self):
        url = MEDIA_HOST + PHOTO_PATH.format("8")
        session = FakeImageSession(existing={url})
        cache = self._cache(session)

        def finish_elsewhere(*args, **kwargs):
            (self.directory / "product_8.jpeg").write_bytes(b"first writer")
            return FakeResponse(200, b"second writer")

        session.get = finish_elsewhere
        with mock.patch.object(cache, "cached_path", return_value=None):
            path = cache.resolve_and_cache("8", True, url)

        self.assertEqual(path, "/media/images/products/product_8.jpeg")
        self.assertEqual((self.directory / "product_8.jpeg").read_bytes(), b"first writer")
        self.assertEqual(sorted(p.name for p in self.directory.iterdir()), ["product_8.jpeg"])

    def test_network_error_means_no_image(self):
        session = FakeImageSession()
        session.get = mock.Mock(side_effect=requests.ConnectionError("down"))

        with self.assertLogs("sync.images", level="WARNING"):
            self.assertIsNone(self._cache(session).resolve_and_cache("7", True, MEDIA_HOST + "/x.jpg"))

    def test_unsafe_remote_id_is_rejected(self):
        session = FakeImageSession()
        self.assertIsNone(self._cache(session).resolve_and_cache("../etc/passwd", True, MEDIA_HOST + "/x.jpg"))
        self.assertEqual(session.network_calls, 0)

    def test_cache_many_returns_one_result_per_request(self):
        urls = {MEDIA_HOST + PHOTO_PATH.format(remote_id) for remote_id in ("1", "2", "3")}
        session = FakeImageSession(existing=urls)
        cache = self._cache(session)

        results = cache.cache_many(
            [
                ImageRequest("1", known_remote_url=MEDIA_HOST + PHOTO_PATH.format("1")),
                ImageRequest("2", known_remote_url=MEDIA_HOST + PHOTO_PATH.format("2")),
                ImageRequest("3", known_remote_url=MEDIA_HOST + PHOTO_PATH.format("3")),
                ImageRequest("4", has_remote_photo=False),
            ]
        )

        self.assertEqual(
            {result.remote_product_id: result.local_path for result in results},
            {
                "1": "/media/images/products/product_1.jpeg",
                "2": "/media/images/products/product_2.jpeg",
                "3": "/media/images/products/product_3.jpeg",
                "4": None,
            },
        )


class FailingProductStore(CatalogStore):
    def __init__(self, failing_remote_ids):
        super().__init__()
        self.failing_remote_ids = set(failing_remote_ids)

    def upsert_product(self, remote_product_id, defaults):
        if remote_product_id in self.failing_remote_ids:
            raise ValueError("constraint violated")
        return super().upsert_product(remote_product_id, defaults)


class SavepointTrackingStore(CatalogStore):
    def __init__(self):
        super().__init__()
        self.depth = 0

    @contextmanager
    def atomic(self):
        self.depth += 1
        try:
            with super().atomic():
                yield
        finally:
            self.depth -= 1


class SavepointAwareImageCache(FakeImageCache):
    def __init__(self, store):
        super().__init__()
        self.store = store
        self.depths = []

    def resolve_and_cache(self, remote_product_id, has_remote_photo, known_remote_url=None):
        self.depths.append(self.store.depth)
        return super().resolve_and_cache(remote_product_id, has_remote_photo, known_remote_url)


class CatalogSynchronizerTests(TestCase):
    def setUp(self):
        self.categories = [RemoteCategory("10", "Сири", 1), RemoteCategory("20", "Напої", 2)]
        self.storages = [RemoteStorage("1", "Центр", "вул. Хрещатик, 1"), RemoteStorage("2", "Поділ")]
        self.branch_defaults = {
            "phone": "+38 (097) 324 46 68",
            "working_hours": "10:00-22:00",
            "latitude": "50.450100",
            "longitude": "30.523400",
        }

    def _synchronizer(self, client, images=None, store=None):
        return CatalogSynchronizer(
            client,
            store or CatalogStore(),
            images or FakeImageCache(),
            branch_defaults=self.branch_defaults,
        )

    def _client(self, products, **kwargs):
        kwargs.setdefault("categories", self.categories)
        kwargs.setdefault("storages", self.storages)
        return FakePosterClient(products=products, **kwargs)

    def test_full_run_persists_catalog_and_reports_counts(self):
        client = self._client(
            [
                make_product("1", "Сир пармезан", category="10", unit="kg", ingredient="100"),
                make_product("2", "Пиво світле", category="20", unit="kg", ingredient="200"),
                make_product("3", "Шоколад", category="10", ingredient="300", is_out=True),
            ],
            leftovers={
                "1": [RemoteLeftover("100", Decimal("2.5"), "kg"), RemoteLeftover("200", Decimal("40"), "kg")],
                "2": [RemoteLeftover("300", Decimal("7"), "pcs")],
            },
        )

        summary = self._synchronizer(client).run()

        self.assertTrue(summary.success)
        self.assertEqual(summary.as_dict(), {
            "categories": 2,
            "products": 3,
            "branches": 2,
            "inventory": 6,
            "skipped": 0,
            "errors": [],
        })

        cheese = Product.objects.get(remote_product_id="1")
        self.assertEqual(cheese.price, Decimal("15.50"))
        self.assertEqual(cheese.custom_quantity, Decimal("50"))
        self.assertEqual(cheese.custom_unit, "g")
        self.assertEqual(cheese.attributes["classification"], "weight_based")
        self.assertEqual(cheese.category.remote_category_id, "10")

        beer = Product.objects.get(remote_product_id="2")
        self.assertEqual(beer.price, Decimal("155.00"))
        self.assertEqual(beer.custom_unit, "l")

        chocolate = Product.objects.get(remote_product_id="3")
        self.assertFalse(chocolate.is_active)
        self.assertIsNone(chocolate.custom_quantity)

        center = Branch.objects.get(remote_storage_id="1")
        self.assertEqual(center.address, "вул. Хрещатик, 1")
        self.assertEqual(center.phone, "+38 (097) 324 46 68")
        self.assertEqual(center.latitude, Decimal("50.450100"))

        stock = ProductInventory.objects.get(product=cheese, branch=center)
        self.assertEqual((stock.quantity, stock.unit), (Decimal("2.500"), "kg"))

    def test_second_run_is_idempotent_and_makes_no_image_requests(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        urls = {MEDIA_HOST + PHOTO_PATH.format(remote_id) for remote_id in ("1", "2")}
        session = FakeImageSession(existing=urls)
        images = ProductImageCache(tmp.name, "/media/images/products/", media_host=MEDIA_HOST, session=session)
        client = self._client(
            [
                make_product("1", photo=PHOTO_PATH.format("1")),
                make_product("2", photo=PHOTO_PATH.format("2")),
                make_product("3", photo=None),
            ],
            leftovers={"1": [RemoteLeftover("ing-1", Decimal("4"), "pcs")]},
        )
        synchronizer = self._synchronizer(client, images=images)
        fields = ["id", "remote_product_id", "name", "price", "image_url", "category_id", "attributes"]

        synchronizer.run()
        first_products = list(Product.objects.order_by("remote_product_id").values(*fields))
        first_categories = list(Category.objects.order_by("remote_category_id").values("id", "name", "sort_order"))
        first_stock = list(ProductInventory.objects.order_by("product__remote_product_id", "branch__name").values("id", "quantity"))
        session.heads.clear()
        session.gets.clear()

        synchronizer.run()

        self.assertEqual(list(Product.objects.order_by("remote_product_id").values(*fields)), first_products)
        self.assertEqual(list(Category.objects.order_by("remote_category_id").values("id", "name", "sort_order")), first_categories)
        self.assertEqual(
            list(ProductInventory.objects.order_by("product__remote_product_id", "branch__name").values("id", "quantity")),
            first_stock,
        )
        self.assertEqual(session.network_calls, 0)
        self.assertEqual(first_products[0]["image_url"], "/media/images/products/product_1.jpeg")
        self.assertEqual(first_products[2]["image_url"], "")

    def test_changed_remote_fields_update_rows_in_place(self):
        self._synchronizer(self._client([make_product("1", "Old name")])).run()
        category_id = Category.objects.get(remote_category_id="10").id
        product_id = Product.objects.get(remote_product_id="1").id
        branch_id = Branch.objects.get(remote_storage_id="1").id

        self._synchronizer(
            FakePosterClient(
                categories=[RemoteCategory("10", "Сири та масло", 1)],
                products=[make_product("1", "New name", price="20000")],
                storages=[RemoteStorage("1", "Центр (оновлено)")],
            )
        ).run()

        self.assertEqual(Category.objects.filter(remote_category_id="10").count(), 1)
        self.assertEqual(Category.objects.get(id=category_id).name, "Сири та масло")
        product = Product.objects.get(id=product_id)
        self.assertEqual((product.name, product.price), ("New name", Decimal("200.00")))
        self.assertEqual(Branch.objects.get(id=branch_id).name, "Центр (оновлено)")
        self.assertEqual(Product.objects.count(), 1)

    def test_unknown_category_falls_back_to_lowest_sort_order(self):
        client = self._client([make_product("1", category="999"), make_product("2", category=None)])

        summary = self._synchronizer(client).run()

        self.assertEqual(summary.products, 2)
        self.assertEqual(summary.skipped, 0)
        fallback = Category.objects.get(remote_category_id="10")
        self.assertEqual(set(Product.objects.values_list("category_id", flat=True)), {fallback.id})

    def test_existing_local_category_is_found_outside_current_run(self):
        local = Category.objects.create(remote_category_id="77", name="Local", sort_order=50)
        client = self._client([make_product("1", category="77")])

        self._synchronizer(client).run()

        self.assertEqual(Product.objects.get(remote_product_id="1").category_id, local.id)

    def test_product_is_skipped_when_no_category_exists(self):
        client = self._client([make_product("1", category="999")], categories=[])

        with self.assertLogs("sync.services", level="WARNING") as logs:
            summary = self._synchronizer(client).run()

        self.assertTrue(summary.success)
        self.assertEqual(summary.products, 0)
        self.assertEqual(summary.skipped, 1)
        self.assertEqual(summary.errors, [])
        self.assertFalse(Product.objects.exists())
        self.assertTrue(any("sync_product_skipped_no_category" in message for message in logs.output))

    def test_products_missing_from_snapshot_are_zeroed(self):
        self._synchronizer(
            self._client(
                [make_product("1", unit="kg", name="Сир"), make_product("2")],
                leftovers={"1": [RemoteLeftover("ing-1", Decimal("5"), "kg"), RemoteLeftover("ing-2", Decimal("3"), "pcs")]},
            )
        ).run()
        cheese = Product.objects.get(remote_product_id="1")
        center = Branch.objects.get(remote_storage_id="1")
        self.assertEqual(ProductInventory.objects.get(product=cheese, branch=center).quantity, Decimal("5"))

        summary = self._synchronizer(
            self._client(
                [make_product("1", unit="kg", name="Сир"), make_product("2")],
                leftovers={"1": [RemoteLeftover("ing-2", Decimal("3"), "pcs")]},
            )
        ).run()

        row = ProductInventory.objects.get(product=cheese, branch=center)
        self.assertEqual(row.quantity, Decimal("0"))
        self.assertEqual(row.unit, "kg")
        self.assertEqual(summary.inventory, 4)

    def test_one_failing_product_does_not_affect_the_others(self):
        products = [make_product(str(index)) for index in range(1, 11)]
        store = FailingProductStore({"3"})

        with self.assertLogs("sync.services", level="ERROR"):
            summary = self._synchronizer(self._client(products), store=store).run()

        self.assertTrue(summary.success)
        self.assertEqual(summary.products, 9)
        self.assertEqual(len(summary.errors), 1)
        self.assertIn("Product Item 3", summary.errors[0])
        self.assertEqual(
            sorted(Product.objects.values_list("remote_product_id", flat=True), key=int),
            ["1", "2", "4", "5", "6", "7", "8", "9", "10"],
        )

    def test_phase_fetch_failure_stops_the_run(self):
        client = self._client(
            [make_product("1")],
            failures={"products": RemoteUnavailable("Poster menu.getProducts timed out", method="menu.getProducts")},
        )

        with self.assertLogs("sync.services", level="ERROR"):
            summary = self._synchronizer(client).run()

        self.assertFalse(summary.success)
        self.assertEqual(summary.failed_phase, "products")
        self.assertEqual(summary.categories, 2)
        self.assertEqual(summary.products, 0)
        self.assertFalse(Branch.objects.exists())
        self.assertIn("timed out", summary.message)

    def test_failed_branch_stock_fetch_leaves_its_inventory_untouched(self):
        self._synchronizer(
            self._client([make_product("1")], leftovers={"2": [RemoteLeftover("ing-1", Decimal("8"), "pcs")]})
        ).run()
        podil = Branch.objects.get(remote_storage_id="2")
        product = Product.objects.get(remote_product_id="1")

        with self.assertLogs("sync.services", level="WARNING"):
            summary = self._synchronizer(
                self._client(
                    [make_product("1")],
                    leftovers={"1": [RemoteLeftover("ing-1", Decimal("2"), "pcs")], "2": RemoteUnavailable("down")},
                )
            ).run()

        self.assertTrue(summary.success)
        self.assertEqual(summary.inventory, 1)
        self.assertEqual(len(summary.errors), 1)
        self.assertIn("Поділ", summary.errors[0])
        self.assertEqual(ProductInventory.objects.get(product=product, branch=podil).quantity, Decimal("8"))

    def test_branch_contact_details_edited_locally_are_kept(self):
        self._synchronizer(self._client([])).run()
        Branch.objects.filter(remote_storage_id="1").update(phone="+38 (044) 000 00 00")

        self._synchronizer(self._client([])).run()

        self.assertEqual(Branch.objects.get(remote_storage_id="1").phone, "+38 (044) 000 00 00")

    def test_inventory_only_run_uses_stored_branches_and_products(self):
        self._synchronizer(self._client([make_product("1")])).run()
        client = FakePosterClient(leftovers={"1": [RemoteLeftover("ing-1", Decimal("11"), "pcs")]})

        summary = self._synchronizer(client).sync_inventory_only()

        self.assertEqual(summary.inventory, 2)
        center = Branch.objects.get(remote_storage_id="1")
        self.assertEqual(ProductInventory.objects.get(branch=center).quantity, Decimal("11"))

    def test_image_backfill_points_products_at_cached_files(self):
        self._synchronizer(self._client([make_product("1", photo="/p1.jpg"), make_product("2")])).run()
        images = FakeImageCache(paths={"1": "/media/images/products/product_1.jpg"})

        summary = self._synchronizer(FakePosterClient(), images=images).backfill_images()

        self.assertEqual(summary.products, 1)
        self.assertEqual(summary.skipped, 1)
        product = Product.objects.get(remote_product_id="1")
        self.assertEqual(product.image_url, "/media/images/products/product_1.jpg")
        self.assertEqual(product.display_image_url, "/media/images/products/product_1.jpg")

    def test_image_backfill_passes_stored_photo_url(self):
        self._synchronizer(
            self._client([make_product("1", photo="/upload/p1.jpg", photo_origin="/upload/p1_origin.jpg"), make_product("2")])
        ).run()
        images = FakeImageCache()

        self._synchronizer(FakePosterClient(), images=images).backfill_images()

        requests_by_id = {request.remote_product_id: request for request in images.requests}
        self.assertEqual(requests_by_id["1"].known_remote_url, MEDIA_HOST + "/upload/p1_origin.jpg")
        self.assertTrue(requests_by_id["1"].has_remote_photo)
        self.assertIsNone(requests_by_id["2"].known_remote_url)
        self.assertFalse(requests_by_id["2"].has_remote_photo)

    def test_images_are_resolved_outside_the_item_savepoint(self):
        store = SavepointTrackingStore()
        images = SavepointAwareImageCache(store)

        summary = self._synchronizer(
            self._client([make_product("1", photo="/p1.jpg"), make_product("2")]), images=images, store=store
        ).run()

        self.assertEqual(summary.products, 2)
        self.assertEqual(images.depths, [0, 0])

    def test_each_phase_logs_its_completion(self):
        with self.assertLogs("sync.services", level="INFO") as logs:
            self._synchronizer(self._client([make_product("1")])).run()

        completed = [line for line in logs.output if "sync_phase_completed" in line]
        self.assertEqual(len(completed), 4)


class SyncRunRecordingTests(TestCase):
    def test_successful_run_is_recorded(self):
        client = FakePosterClient(categories=[RemoteCategory("1", "A")], products=[make_product("1", category="1")])
        synchronizer = CatalogSynchronizer(client, CatalogStore(), FakeImageCache())

        sync_run, summary = run_full_sync(SyncRun.Trigger.FULL, synchronizer=synchronizer)

        sync_run.refresh_from_db()
        self.assertEqual(sync_run.status, SyncRun.Status.SUCCEEDED)
        self.assertEqual((sync_run.categories, sync_run.products), (1, 1))
        self.assertIsNotNone(sync_run.finished_at)
        self.assertFalse(client.closed)

    def test_failed_run_is_recorded_with_phase(self):
        client = FakePosterClient(failures={"categories": RemoteProtocolError("bad token")})
        synchronizer = CatalogSynchronizer(client, CatalogStore(), FakeImageCache())

        with self.assertLogs("sync.services", level="ERROR"):
            sync_run, _ = run_full_sync(SyncRun.Trigger.FULL, synchronizer=synchronizer)

        sync_run.refresh_from_db()
        self.assertEqual(sync_run.status, SyncRun.Status.FAILED)
        self.assertEqual(sync_run.failed_phase, "categories")


class SyncApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="admin", password="pass1234", is_staff=True)
        self.customer = user_model.objects.create_user(username="customer", password="pass1234")

    def _patch_synchronizer(self, client):
        synchronizer = CatalogSynchronizer(client, CatalogStore(), FakeImageCache())
        patcher = mock.patch("sync.services.build_synchronizer", return_value=synchronizer)
        patcher.start()
        self.addCleanup(patcher.stop)
        return synchronizer

    def test_unauthenticated_request_uses_standard_envelope(self):
        response = self.client.post("/api/v1/sync/full")

        self.assertEqual(response.status_code, 401)
        payload = response.json()
        self.assertEqual(payload["code"], "not_authenticated")
        self.assertEqual(payload["status"], 401)

    def test_non_staff_user_is_forbidden(self):
        self.client.force_authenticate(user=self.customer)

        response = self.client.post("/api/v1/sync/full")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")

    def test_full_sync_returns_summary(self):
        client = FakePosterClient(
            categories=[RemoteCategory("1", "A")],
            products=[make_product("1", category="1")],
            storages=[RemoteStorage("5", "Shop")],
        )
        self._patch_synchronizer(client)
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/sync/full")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(
            payload["results"],
            {"categories": 1, "products": 1, "branches": 1, "inventory": 1, "skipped": 0, "errors": []},
        )
        run = SyncRun.objects.get(id=payload["run_id"])
        self.assertEqual(run.triggered_by, self.admin)
        self.assertTrue(client.closed)

    def test_remote_outage_returns_bad_gateway_envelope(self):
        self._patch_synchronizer(FakePosterClient(failures={"categories": RemoteUnavailable("Poster down")}))
        self.client.force_authenticate(user=self.admin)

        with self.assertLogs("sync.services", level="ERROR"), self.assertLogs("common.exceptions", level="WARNING"):
            response = self.client.post("/api/v1/sync/full")

        self.assertEqual(response.status_code, 502)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "upstream_unavailable")
        self.assertEqual(payload["status"], 502)
        self.assertEqual(payload["failed_phase"], "categories")
        self.assertEqual(payload["results"]["categories"], 0)
        self.assertIsNone(payload["errors"])
        self.assertIn("Poster down", payload["message"])
        self.assertEqual(SyncRun.objects.get(id=payload["run_id"]).status, SyncRun.Status.FAILED)

    def test_inventory_sync_endpoint(self):
        Branch.objects.create(remote_storage_id="5", name="Shop")
        self._patch_synchronizer(FakePosterClient())
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/sync/inventory")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"]["branches"], 1)
        self.assertEqual(SyncRun.objects.get().trigger, SyncRun.Trigger.INVENTORY)

    def test_runs_are_listed_newest_first(self):
        older = SyncRun.objects.create(trigger=SyncRun.Trigger.FULL, status=SyncRun.Status.SUCCEEDED)
        SyncRun.objects.filter(id=older.id).update(started_at=timezone.now() - timedelta(hours=1))
        SyncRun.objects.create(trigger=SyncRun.Trigger.IMAGES, status=SyncRun.Status.FAILED, triggered_by=self.admin)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/sync/runs/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["count"], 2)
        self.assertEqual(payload["results"][0]["trigger"], "images")
        self.assertEqual(payload["results"][0]["triggered_by"], "admin")
        self.assertIsNone(payload["results"][1]["triggered_by"])


class SyncCatalogCommandTests(TestCase):
    def test_command_runs_full_sync(self):
        synchronizer = CatalogSynchronizer(
            FakePosterClient(categories=[RemoteCategory("1", "A")]), CatalogStore(), FakeImageCache()
        )
        with mock.patch("sync.services.build_synchronizer", return_value=synchronizer):
            call_command("sync_catalog", stdout=StringIO())

        run = SyncRun.objects.get()
        self.assertEqual((run.source, run.trigger, run.categories), ("command", "full", 1))

    def test_command_fails_when_remote_is_unavailable(self):
        synchronizer = CatalogSynchronizer(
            FakePosterClient(failures={"categories": RemoteUnavailable("down")}), CatalogStore(), FakeImageCache()
        )
        with mock.patch("sync.services.build_synchronizer", return_value=synchronizer):
            with self.assertLogs("sync.services", level="ERROR"), self.assertRaises(CommandError):
                call_command("sync_catalog", stdout=StringIO(), stderr=StringIO())
