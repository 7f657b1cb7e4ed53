"""Derived image assets for published products.

Source images are fetched with httpx and resized with Pillow into fixed
variants. Resizing is CPU-bound and runs in a worker thread.
"""

import asyncio
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import httpx
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}

JPEG_QUALITY = 85
WHITE = (255, 255, 255)


@dataclass(frozen=True)
class ImageSize:
    suffix: str
    width: int
    height: int


DEFAULT_SIZES = (
    ImageSize("thumb", 150, 150),
    ImageSize("medium", 400, 400),
    ImageSize("large", 800, 800),
)


@dataclass(frozen=True)
class StoredAssetRef:
    url: str
    path: Path
    width: int
    height: int


class AssetError(Exception):
    """The source image could not be decoded or the variants not stored."""


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "-", name).strip("-") or "image"


def _flatten(img: Image.Image) -> Image.Image:
    """Composite transparency onto white and return an RGB image."""
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, WHITE)
        background.paste(img, mask=img.getchannel("A"))
        return background
    return img.convert("RGB")


class AssetProcessor:
    def __init__(self, output_dir: Path, url_prefix: str = "/images/products"):
        self.output_dir = Path(output_dir)
        self.url_prefix = url_prefix.rstrip("/")

    async def derive_variants(
        self, image_bytes: bytes, sizes=DEFAULT_SIZES, name: str = "image"
    ) -> list[StoredAssetRef]:
        """Write one JPEG per size, fitted inside the box without enlarging.

        Raises AssetError when the source cannot be decoded; a single failing
        size is skipped.
        """
        return await asyncio.to_thread(self._derive_sync, image_bytes, sizes, name)

    def _derive_sync(self, image_bytes: bytes, sizes, name: str) -> list[StoredAssetRef]:
        try:
            source = Image.open(io.BytesIO(image_bytes))
            source.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise AssetError(f"cannot decode image for {name}: {e}") from e

        base = _safe_name(name)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AssetError(f"cannot create {self.output_dir}: {e}") from e
        refs: list[StoredAssetRef] = []

        for size in sizes:
            try:
                variant = _flatten(source.copy())
                # thumbnail() keeps aspect ratio and never upscales
                variant.thumbnail((size.width, size.height))
                file_name = f"{base}-{size.suffix}.jpg"
                path = self.output_dir / file_name
                variant.save(path, "JPEG", quality=JPEG_QUALITY)
            except (OSError, ValueError) as e:
                logger.warning("Error processing %s image for %s: %s", size.suffix, name, e)
                continue
            refs.append(StoredAssetRef(
                url=f"{self.url_prefix}/{file_name}",
                path=path,
                width=variant.width,
                height=variant.height,
            ))
        return refs


class ImageFetcher:
    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._client = client
        self._timeout = timeout

    async def fetch(self, url: str) -> bytes:
        if self._client is not None:
            resp = await self._client.get(url, headers=HEADERS, timeout=self._timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(headers=HEADERS, timeout=self._timeout) as client:
                resp = await client.get(url, follow_redirects=True)
        resp.raise_for_status()
        return resp.content


async def product_images(
    product_id: str,
    image_url: str,
    fetcher: ImageFetcher,
    processor: AssetProcessor,
    sizes=DEFAULT_SIZES,
) -> list[str]:
    """Image URLs for a product; any fetch or decode failure yields none."""
    if not image_url:
        return []
    try:
        data = await fetcher.fetch(image_url)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Image fetch failed for %s: %s", product_id, e)
        return []
    try:
        refs = await processor.derive_variants(data, sizes, name=product_id)
    except AssetError as e:
        logger.warning("Image processing failed for %s: %s", product_id, e)
        return []
    return [r.url for r in refs]
