"""Local cache of Poster product photos.

Files are stored as ``product_<remote id>.<ext>`` so a product has at most one
cached image and repeated syncs never hit the network for it again.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

CACHED_EXTENSIONS = ("png", "jpg", "jpeg", "webp")
PROBE_EXTENSIONS = ("png", "jpeg", "jpg", "webp")
DEFAULT_EXTENSION = "jpg"

# Upload timestamps seen in Poster photo filenames; the empty entry probes
# the bare product_<id>.<ext> form.
KNOWN_UPLOAD_TIMESTAMPS = (
    "1707315138",
    "1678998630",
    "1678998675",
    "1678998721",
    "1688988756",
    "1678785050",
    "1678785078",
    "1717493132",
    "1678785093",
    "1678785064",
    "1689445896",
    "1678785128",
    "1678996480",
    "1678996934",
    "1679039883",
    "1678000000",
    "1680000000",
    "",
)

CHUNK_SIZE = 64 * 1024
PARTIAL_SUFFIX = ".part"
SAFE_REMOTE_ID = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True)
class ImageRequest:
    remote_product_id: str
    has_remote_photo: bool = True
    known_remote_url: str | None = None


@dataclass(frozen=True)
class ImageResult:
    remote_product_id: str
    local_path: str | None


class ProductImageCache:
    def __init__(
        self,
        directory,
        url_prefix: str,
        *,
        media_host: str = "https://joinposter.com",
        upload_path: str = "",
        session: requests.Session | None = None,
        probe_timeout: float = 5.0,
        download_timeout: float = 10.0,
        batch_size: int = 5,
        batch_delay: float = 1.0,
    ):
        self.directory = Path(directory)
        self.url_prefix = url_prefix if url_prefix.endswith("/") else f"{url_prefix}/"
        self.media_host = media_host.rstrip("/")
        self.upload_path = "/" + upload_path.strip("/") if upload_path.strip("/") else ""
        self.session = session or requests.Session()
        self.probe_timeout = probe_timeout
        self.download_timeout = download_timeout
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay

    @classmethod
    def from_settings(cls, session: requests.Session | None = None) -> ProductImageCache:
        return cls(
            settings.PRODUCT_IMAGES_DIR,
            settings.PRODUCT_IMAGES_URL,
            media_host=settings.POSTER_MEDIA_HOST,
            upload_path=settings.POSTER_IMAGE_UPLOAD_PATH,
            session=session,
            probe_timeout=settings.POSTER_IMAGE_PROBE_TIMEOUT,
            download_timeout=settings.POSTER_IMAGE_DOWNLOAD_TIMEOUT,
            batch_size=settings.POSTER_IMAGE_BATCH_SIZE,
            batch_delay=settings.POSTER_IMAGE_BATCH_DELAY,
        )

    def close(self):
        self.session.close()

    def cached_path(self, remote_product_id: str) -> str | None:
        for ext in CACHED_EXTENSIONS:
            filename = self._filename(remote_product_id, ext)
            if (self.directory / filename).is_file():
                return self.url_prefix + filename
        return None

    def candidate_urls(self, remote_product_id: str) -> list[str]:
        base = f"{self.media_host}{self.upload_path}"
        urls = []
        for timestamp in KNOWN_UPLOAD_TIMESTAMPS:
            stem = f"product_{timestamp}_{remote_product_id}" if timestamp else f"product_{remote_product_id}"
            urls.extend(f"{base}/{stem}.{ext}" for ext in PROBE_EXTENSIONS)
        return urls

    def find_remote_url(self, remote_product_id: str) -> str | None:
        for url in self.candidate_urls(remote_product_id):
            try:
                response = self.session.head(url, timeout=self.probe_timeout, allow_redirects=True)
            except requests.RequestException:
                continue
            if response.status_code == 200:
                return url
        logger.info("image_probe_exhausted", extra={"remote_id": remote_product_id})
        return None

    def resolve_and_cache(
        self,
        remote_product_id: str,
        has_remote_photo: bool,
        known_remote_url: str | None = None,
    ) -> str | None:
        """Return the public path of the cached photo, downloading it at most once.

        Never raises: any network or filesystem problem means "no image".
        """
        if not remote_product_id or not SAFE_REMOTE_ID.fullmatch(remote_product_id):
            return None

        cached = self.cached_path(remote_product_id)
        if cached:
            return cached
        logger.debug("image_cache_miss", extra={"remote_id": remote_product_id})

        url = known_remote_url
        if not url and has_remote_photo:
            url = self.find_remote_url(remote_product_id)
        if not url:
            return None

        try:
            return self._download(remote_product_id, url)
        except (requests.RequestException, OSError) as exc:
            logger.warning(
                "image_download_failed url=%s error=%s",
                url,
                exc,
                extra={"remote_id": remote_product_id},
            )
            return None

    def cache_many(self, items: Iterable[ImageRequest]) -> list[ImageResult]:
        """Resolve images in batches of `batch_size`, pausing between batches."""
        pending = list(items)
        results: list[ImageResult] = []
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for start in range(0, len(pending), self.batch_size):
                batch = pending[start : start + self.batch_size]
                paths = executor.map(
                    lambda item: self.resolve_and_cache(item.remote_product_id, item.has_remote_photo, item.known_remote_url),
                    batch,
                )
                results.extend(ImageResult(item.remote_product_id, path) for item, path in zip(batch, paths))
                if self.batch_delay and start + self.batch_size < len(pending):
                    time.sleep(self.batch_delay)
        return results

    def _download(self, remote_product_id: str, url: str) -> str | None:
        ext = self._extension_for(url)
        filename = self._filename(remote_product_id, ext)
        target = self.directory / filename

        with self.session.get(url, stream=True, timeout=self.download_timeout) as response:
            if response.status_code != 200:
                logger.warning(
                    "image_download_rejected url=%s status=%s",
                    url,
                    response.status_code,
                    extra={"remote_id": remote_product_id},
                )
                return None

            self.directory.mkdir(parents=True, exist_ok=True)
            # Partial downloads live under a temp name; only complete files
            # ever appear as product_<id>.<ext>.
            partial = tempfile.NamedTemporaryFile(
                dir=self.directory, prefix=f".{filename}.", suffix=PARTIAL_SUFFIX, delete=False
            )
            try:
                with partial:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            partial.write(chunk)
                try:
                    os.link(partial.name, target)
                except FileExistsError:
                    return self.url_prefix + filename
            finally:
                os.unlink(partial.name)

        logger.info("image_cached file=%s", filename, extra={"remote_id": remote_product_id})
        return self.url_prefix + filename

    @staticmethod
    def _filename(remote_product_id: str, ext: str) -> str:
        return f"product_{remote_product_id}.{ext}"

    @staticmethod
    def _extension_for(url: str) -> str:
        suffix = Path(urlparse(url).path).suffix.lstrip(".").lower()
        return suffix if suffix in CACHED_EXTENSIONS else DEFAULT_EXTENSION
