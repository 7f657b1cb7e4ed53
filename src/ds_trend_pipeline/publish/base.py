from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from ds_trend_pipeline.pipeline.models import ScoredProduct, ScoredSignal
from ds_trend_pipeline.sources.base import utcnow

from .assets import DEFAULT_SIZES, AssetProcessor, ImageFetcher, product_images
from .mapper import CatalogProduct, PublishPolicy, to_catalog_product

logger = logging.getLogger(__name__)


class PublishSink(ABC):
    """Downstream store for the ranked shortlist.

    ``upsert`` must be idempotent per product id: a second call updates the
    existing entry. It returns the sink's id for the entry and raises on
    failure.
    """

    sink_name: str = "unknown"

    @abstractmethod
    async def upsert(
        self, product: ScoredProduct, *, trending: list[ScoredSignal] | None = None
    ) -> str:
        ...


class CatalogSink(PublishSink):
    """Maps products onto the catalog schema, derives images, then writes."""

    def __init__(
        self,
        policy: PublishPolicy | None = None,
        processor: AssetProcessor | None = None,
        fetcher: ImageFetcher | None = None,
        sizes=DEFAULT_SIZES,
        now: Callable[[], datetime] = utcnow,
    ):
        self.policy = policy or PublishPolicy()
        self._processor = processor
        self._fetcher = fetcher or ImageFetcher()
        self._sizes = sizes
        self._now = now

    async def build_record(
        self, product: ScoredProduct, trending: list[ScoredSignal] | None = None
    ) -> CatalogProduct:
        images: list[str] = []
        if self._processor is not None:
            images = await product_images(
                product.id, product.image_url, self._fetcher, self._processor, self._sizes
            )
        return to_catalog_product(
            product, images=images, trending=trending, policy=self.policy, now=self._now()
        )

    async def upsert(
        self, product: ScoredProduct, *, trending: list[ScoredSignal] | None = None
    ) -> str:
        record = await self.build_record(product, trending)
        remote_id = await self._write(record)
        logger.debug("Upserted %s as %s (%s)", product.id, remote_id, record.status)
        return remote_id

    @abstractmethod
    async def _write(self, record: CatalogProduct) -> str:
        """Insert or update ``record`` keyed by its id. Raises PublishFailed."""
        ...
