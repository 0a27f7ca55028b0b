"""
BitYield REST API routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from shared.auth import verify_api_key
from agents.bityield.models.schemas import (
    AggregatedYields,
    FilterCriteria,
    HealthResponse,
    Opportunity,
    OracleStatusResponse,
    Recommendation,
    SyncResult,
    UserProfile,
)
from agents.bityield.services.aggregator import (
    YieldAggregator,
    filter_opportunities,
    sort_opportunities,
    top_opportunities,
)
from agents.bityield.services.recommender import RecommendationEngine
from agents.bityield.services.oracle_sync import OracleSyncPolicy
from agents.bityield.errors import ConfigurationError, NoSuitableOpportunitiesError

router = APIRouter(prefix="/api/v1/bityield", tags=["bityield"])


def get_aggregator(request: Request) -> YieldAggregator:
    return request.app.state.aggregator


def get_engine(request: Request) -> RecommendationEngine:
    return request.app.state.engine


def get_oracle_sync(request: Request) -> OracleSyncPolicy:
    return request.app.state.oracle_sync


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    resp = HealthResponse()
    engine = getattr(request.app.state, "engine", None)
    oracle_sync = getattr(request.app.state, "oracle_sync", None)
    resp.model_enabled = bool(engine and engine.model_available)
    resp.oracle_sync_running = bool(oracle_sync and oracle_sync.running)
    return resp


@router.get("/yields", response_model=AggregatedYields)
async def get_aggregated_yields(aggregator: YieldAggregator = Depends(get_aggregator)):
    """All protocols, including per-protocol fetch errors."""
    return await aggregator.aggregate()


@router.get("/yields/opportunities", response_model=list[Opportunity])
async def list_opportunities(
    min_apy: float | None = Query(None, ge=0),
    max_apy: float | None = Query(None, ge=0),
    min_tvl: float | None = Query(None, ge=0),
    max_risk_level: str | None = Query(None, pattern="^(low|medium|high)$"),
    no_impermanent_loss: bool = False,
    protocol: list[str] | None = Query(None),
    max_lock_period_days: int | None = Query(None, ge=0),
    sort_by: str = Query("score", pattern="^(apy|tvl|score|risk)$"),
    direction: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=200),
    aggregator: YieldAggregator = Depends(get_aggregator),
):
    """Filtered and sorted opportunities."""
    aggregated = await aggregator.aggregate()
    criteria = FilterCriteria(
        min_apy=min_apy,
        max_apy=max_apy,
        min_tvl=min_tvl,
        max_risk_level=max_risk_level,
        no_impermanent_loss=no_impermanent_loss,
        protocols=frozenset(protocol) if protocol else None,
        max_lock_period_days=max_lock_period_days,
    )
    filtered = filter_opportunities(aggregated.opportunities, criteria)
    return sort_opportunities(filtered, sort_by, direction)[:limit]


@router.get("/yields/top", response_model=list[Opportunity])
async def get_top_opportunities(
    limit: int = Query(5, ge=1, le=50),
    risk_tolerance: str = Query("moderate", pattern="^(conservative|moderate|aggressive)$"),
    aggregator: YieldAggregator = Depends(get_aggregator),
):
    aggregated = await aggregator.aggregate()
    return top_opportunities(aggregated.opportunities, limit, risk_tolerance)


@router.post("/recommendations", response_model=Recommendation)
async def create_recommendation(
    profile: UserProfile,
    aggregator: YieldAggregator = Depends(get_aggregator),
    engine: RecommendationEngine = Depends(get_engine),
):
    aggregated = await aggregator.aggregate()
    try:
        return await engine.get_recommendation(aggregated.opportunities, profile)
    except NoSuitableOpportunitiesError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/oracle/status", response_model=OracleStatusResponse)
async def oracle_status(oracle_sync: OracleSyncPolicy = Depends(get_oracle_sync)):
    return OracleStatusResponse(
        running=oracle_sync.running,
        syncing=oracle_sync.syncing,
        interval_seconds=oracle_sync.interval,
        baseline=oracle_sync.baseline,
        on_chain=await oracle_sync.read_on_chain(),
        stats=oracle_sync.stats,
    )


@router.post("/oracle/sync", response_model=SyncResult)
async def trigger_sync(
    oracle_sync: OracleSyncPolicy = Depends(get_oracle_sync),
    _key: bool = Depends(verify_api_key),
):
    """Run one sync cycle now, subject to the change threshold."""
    try:
        return await oracle_sync.run_sync_cycle()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/oracle/force-sync", response_model=SyncResult)
async def force_sync(
    oracle_sync: OracleSyncPolicy = Depends(get_oracle_sync),
    _key: bool = Depends(verify_api_key),
):
    """Reset the baseline and push regardless of the change size."""
    try:
        return await oracle_sync.force_sync_cycle()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/oracle/start", status_code=202)
async def start_sync(
    oracle_sync: OracleSyncPolicy = Depends(get_oracle_sync),
    _key: bool = Depends(verify_api_key),
):
    oracle_sync.start()
    return {"status": "started", "interval_seconds": oracle_sync.interval}


@router.post("/oracle/stop", status_code=202)
async def stop_sync(
    oracle_sync: OracleSyncPolicy = Depends(get_oracle_sync),
    _key: bool = Depends(verify_api_key),
):
    oracle_sync.stop()
    return {"status": "stopped"}
