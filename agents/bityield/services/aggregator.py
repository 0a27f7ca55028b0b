"""
Yield Aggregator - fans out to every registered protocol adapter, merges
the results and provides the filter/sort/top-N views used by the
recommendation engine, the oracle sync and the API.
"""
import asyncio
import time
from datetime import datetime, timezone
from agents.bityield.models.schemas import (
    AggregatedYields,
    FilterCriteria,
    HighestApy,
    LowestRisk,
    Opportunity,
    ProtocolData,
    SortDirection,
    SortKey,
    UserProfile,
)
from agents.bityield.services.adapters import ProtocolAdapter
from agents.bityield.services.scorer import is_risk_allowed, score, score_for_tolerance
from agents.bityield.config import RISK_ORDER
import structlog

logger = structlog.get_logger()

DEFAULT_SORT_TOLERANCE = "moderate"


class YieldAggregator:
    def __init__(self, adapters: list[ProtocolAdapter], adapter_timeout: float = 15.0):
        self.adapters = list(adapters)
        self.adapter_timeout = adapter_timeout

    async def _fetch_protocol(self, adapter: ProtocolAdapter) -> ProtocolData:
        try:
            opportunities = await asyncio.wait_for(
                adapter.fetch_opportunities(), timeout=self.adapter_timeout
            )
        except asyncio.TimeoutError:
            logger.error("protocol_fetch_timeout", protocol=adapter.name, timeout=self.adapter_timeout)
            return ProtocolData(protocol=adapter.name, success=False, error="timeout")
        except Exception as e:
            logger.error("protocol_fetch_failed", protocol=adapter.name, error=str(e))
            return ProtocolData(protocol=adapter.name, success=False, error=str(e) or type(e).__name__)

        total_tvl = sum(opp.tvl for opp in opportunities)
        logger.info("protocol_fetched", protocol=adapter.name, count=len(opportunities), total_tvl=total_tvl)
        return ProtocolData(
            protocol=adapter.name,
            opportunities=list(opportunities),
            total_tvl=total_tvl,
        )

    async def aggregate(self) -> AggregatedYields:
        """Fetch every protocol concurrently. One failing adapter contributes
        nothing and records its error; the rest still count."""
        started = time.monotonic()
        protocols = list(await asyncio.gather(*(self._fetch_protocol(a) for a in self.adapters)))

        opportunities = [opp for p in protocols for opp in p.opportunities]
        result = AggregatedYields(
            protocols=protocols,
            total_opportunities=len(opportunities),
            total_tvl=sum(p.total_tvl for p in protocols),
            highest_apy=find_highest_apy(opportunities),
            lowest_risk=find_lowest_risk(opportunities),
            updated_at=datetime.now(timezone.utc),
        )

        logger.info(
            "yields_aggregated",
            protocols=len(protocols),
            failed=[p.protocol for p in protocols if not p.success],
            total_opportunities=result.total_opportunities,
            total_tvl=round(result.total_tvl, 2),
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return result


def find_highest_apy(opportunities: list[Opportunity]) -> HighestApy | None:
    if not opportunities:
        return None
    best = max(opportunities, key=lambda o: o.apy)
    return HighestApy(protocol=best.protocol, pool_id=best.pool_id, apy=best.apy)


def find_lowest_risk(opportunities: list[Opportunity]) -> LowestRisk | None:
    """Highest-TVL opportunity among the low and medium risk ones."""
    candidates = [o for o in opportunities if o.risk_level in ("low", "medium")]
    if not candidates:
        return None
    safest = max(candidates, key=lambda o: o.tvl)
    return LowestRisk(protocol=safest.protocol, pool_id=safest.pool_id, tvl=safest.tvl)


def _matches(opp: Opportunity, criteria: FilterCriteria) -> bool:
    if criteria.min_apy is not None and opp.apy < criteria.min_apy:
        return False
    if criteria.max_apy is not None and opp.apy > criteria.max_apy:
        return False
    if criteria.min_tvl is not None and opp.tvl < criteria.min_tvl:
        return False
    if criteria.max_risk_level is not None:
        if RISK_ORDER.index(opp.risk_level) > RISK_ORDER.index(criteria.max_risk_level):
            return False
    if criteria.protocols is not None and opp.protocol not in criteria.protocols:
        return False
    if criteria.no_impermanent_loss and opp.impermanent_loss_risk:
        return False
    if criteria.max_lock_period_days is not None and opp.lock_period_days > criteria.max_lock_period_days:
        return False
    return True


def filter_opportunities(opportunities: list[Opportunity], criteria: FilterCriteria) -> list[Opportunity]:
    return [opp for opp in opportunities if _matches(opp, criteria)]


def sort_opportunities(
    opportunities: list[Opportunity],
    key: SortKey = "score",
    direction: SortDirection = "desc",
    profile: UserProfile | None = None,
) -> list[Opportunity]:
    """Stable sort; equal keys keep fetch order in both directions."""
    if key == "apy":
        sort_key = lambda o: o.apy
    elif key == "tvl":
        sort_key = lambda o: o.tvl
    elif key == "risk":
        sort_key = lambda o: RISK_ORDER.index(o.risk_level)
    elif key == "score":
        if profile is not None:
            sort_key = lambda o: score(o, profile)
        else:
            sort_key = lambda o: score_for_tolerance(o, DEFAULT_SORT_TOLERANCE)
    else:
        raise ValueError(f"Unknown sort key: {key}")

    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction: {direction}")
    return sorted(opportunities, key=sort_key, reverse=direction == "desc")


def top_opportunities(
    opportunities: list[Opportunity],
    limit: int = 5,
    risk_tolerance: str = "moderate",
) -> list[Opportunity]:
    """Best `limit` opportunities among the risk levels the tolerance allows."""
    allowed = [o for o in opportunities if is_risk_allowed(o.risk_level, risk_tolerance)]
    ranked = sorted(allowed, key=lambda o: score_for_tolerance(o, risk_tolerance), reverse=True)
    return ranked[:limit]
