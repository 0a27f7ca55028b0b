"""
BitYield Agent - FastAPI application (port 8007)

Aggregates sBTC yield opportunities across protocols, recommends a pool for
a depositor's risk profile (model first, rule-based fallback), and keeps the
on-chain pool oracle in sync with live APY/TVL.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from shared.config import settings
from shared.price_feed import PriceFeed
from shared.utils.logging import setup_logging
from shared.utils.scheduler import start_scheduler, stop_scheduler
from agents.bityield.routes.api import router
from agents.bityield.services.adapters import build_feed_adapters
from agents.bityield.services.aggregator import YieldAggregator
from agents.bityield.services.blockchain import PoolOracleContract
from agents.bityield.services.oracle_sync import OracleSyncPolicy
from agents.bityield.services.recommender import RecommendationEngine
import structlog

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    aggregator = YieldAggregator(
        build_feed_adapters(settings.YIELD_FEEDS, timeout=settings.ADAPTER_TIMEOUT_SECONDS),
        adapter_timeout=settings.ADAPTER_TIMEOUT_SECONDS,
    )
    app.state.aggregator = aggregator
    app.state.engine = RecommendationEngine()
    app.state.oracle_sync = OracleSyncPolicy(
        aggregator=aggregator,
        price_feed=PriceFeed(),
        submitter=PoolOracleContract(),
    )
    logger.info(
        "bityield_starting",
        protocols=list(settings.YIELD_FEEDS),
        model_enabled=app.state.engine.model_available,
    )

    start_scheduler()
    app.state.oracle_sync.start()

    yield

    app.state.oracle_sync.stop()
    stop_scheduler()
    logger.info("bityield_stopped")


app = FastAPI(
    title="BitYield",
    description="sBTC yield aggregation, risk-aware recommendations and "
                "change-threshold oracle sync.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("agents.bityield.main:app", host="0.0.0.0", port=8007, reload=True)
