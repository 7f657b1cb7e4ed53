import json

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ds_trend_pipeline.config import settings
from ds_trend_pipeline.pipeline.models import RunResult

from .models import Base, PipelineRun


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


engine = make_engine(settings.database_url)
async_session_factory = make_session_factory(engine)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create missing tables."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def store_run(session: AsyncSession, result: RunResult) -> PipelineRun:
    """Persist a summary row (plus the full JSON) for one finished run."""
    row = PipelineRun(
        stage=result.stage.value,
        signal_count=len(result.signals),
        candidate_count=len(result.candidates),
        product_count=len(result.products),
        published_count=result.published_count,
        failure_count=len(result.failures),
        average_signal_score=result.signal_summary.average,
        recommendations_json=json.dumps(list(result.recommendations)),
        result_json=json.dumps(result.to_dict()),
        started_at=result.started_at,
        generated_at=result.generated_at,
    )
    session.add(row)
    await session.commit()
    return row
