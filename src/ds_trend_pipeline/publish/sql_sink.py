import json
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ds_trend_pipeline.db.models import CatalogEntry
from ds_trend_pipeline.pipeline.errors import PublishFailed

from .base import CatalogSink
from .mapper import CatalogProduct

logger = logging.getLogger(__name__)


class SqlCatalogSink(CatalogSink):
    """Local catalog table; one row per source id, updated in place."""

    sink_name = "catalog_db"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], **kwargs):
        super().__init__(**kwargs)
        self._session_factory = session_factory

    async def _write(self, record: CatalogProduct) -> str:
        payload = record.to_payload()
        try:
            async with self._session_factory() as session:
                entry = (
                    await session.execute(
                        select(CatalogEntry).where(CatalogEntry.source_id == record.id)
                    )
                ).scalar_one_or_none()

                if entry is None:
                    entry = CatalogEntry(source_id=record.id)
                    session.add(entry)
                    logger.info("New catalog entry: '%s'", record.title)

                entry.title = record.title
                entry.slug = record.seo.slug
                entry.status = record.status
                entry.price = record.price
                entry.trend_score = record.trend_score
                entry.payload_json = json.dumps(payload)

                await session.flush()  # get the ID
                remote_id = str(entry.id)
                await session.commit()
        except SQLAlchemyError as e:
            raise PublishFailed(record.id, f"catalog write failed: {e}") from e
        return remote_id
