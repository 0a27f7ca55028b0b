"""
Protocol adapters - the boundary between per-protocol data sources and the
aggregator. Each adapter returns normalized Opportunity records.
"""
from datetime import datetime, timezone
from typing import Any, Protocol
import httpx
from pydantic import ValidationError
from agents.bityield.models.schemas import Fees, Opportunity
import structlog

logger = structlog.get_logger()

DEFAULT_RISK_FACTOR = "Smart contract risk"


class ProtocolAdapter(Protocol):
    name: str

    async def fetch_opportunities(self) -> list[Opportunity]: ...


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Feeds publish either seconds or milliseconds since epoch
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def normalize_opportunity(raw: dict, protocol: str) -> Opportunity:
    """Map one raw feed record (camelCase or snake_case) to an Opportunity."""

    def pick(*names, default=None):
        for name in names:
            if raw.get(name) is not None:
                return raw[name]
        return default

    pool_id = pick("poolId", "pool_id", "id")
    if pool_id is None:
        raise KeyError("poolId")

    fees = Fees(
        deposit_fee=float(pick("depositFee", "deposit_fee", default=0)),
        withdrawal_fee=float(pick("withdrawalFee", "withdrawal_fee", default=0)),
        performance_fee=float(pick("performanceFee", "performance_fee", default=0)),
    )
    risk_factors = list(pick("riskFactors", "risk_factors", default=[]) or [])
    audit_status = pick("auditStatus", "audit_status")
    if audit_status is not None:
        # Feeds spell it "in-progress"
        audit_status = str(audit_status).lower().replace("-", "_")

    return Opportunity(
        protocol=str(pick("protocol", default=protocol)).lower(),
        pool_id=str(pool_id),
        pool_name=str(pick("poolName", "pool_name", "name", default="Pool")),
        protocol_type=pick("protocolType", "protocol_type"),
        contract_address=pick("contractAddress", "contract_address"),
        apy=float(pick("apy", default=0)),
        tvl=float(pick("tvl", "tvlUsd", "tvl_usd", default=0)),
        volume_24h=pick("volume24h", "volume_24h"),
        fees=fees,
        risk_level=str(pick("riskLevel", "risk_level", default="high")).lower(),
        impermanent_loss_risk=bool(pick("impermanentLossRisk", "impermanent_loss_risk", default=False)),
        risk_factors=risk_factors or [DEFAULT_RISK_FACTOR],
        audit_status=audit_status,
        lock_period_days=int(pick("lockPeriod", "lockPeriodDays", "lock_period_days", default=0)),
        min_deposit_sats=int(pick("minDeposit", "minDepositSats", "min_deposit_sats", default=0)),
        updated_at=_to_datetime(pick("updatedAt", "updated_at")),
    )


class HttpYieldAdapter:
    """Adapter for a JSON endpoint that lists pools, either as a bare list or
    under an `opportunities`/`data` key."""

    def __init__(self, name: str, url: str, timeout: float = 15.0):
        self.name = name
        self.url = url
        self.timeout = timeout

    async def fetch_opportunities(self) -> list[Opportunity]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(self.url)
            resp.raise_for_status()
            data = resp.json()

        records = data
        if isinstance(data, dict):
            records = data.get("opportunities") or data.get("data") or []

        opportunities = []
        for raw in records:
            if not isinstance(raw, dict):
                continue
            try:
                opportunities.append(normalize_opportunity(raw, self.name))
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                logger.debug("pool_record_skipped", protocol=self.name, error=str(e))

        logger.debug("feed_fetched", protocol=self.name, count=len(opportunities))
        return opportunities


def build_feed_adapters(feeds: dict[str, str], timeout: float = 15.0) -> list[HttpYieldAdapter]:
    return [HttpYieldAdapter(name, url, timeout=timeout) for name, url in feeds.items()]
