from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, Field, computed_field
from agents.bityield.config import AGENT_NAME

RiskLevel = Literal["low", "medium", "high"]
RiskTolerance = Literal["conservative", "moderate", "aggressive"]
AuditStatus = Literal["audited", "unaudited", "in_progress"]
ProtocolType = Literal["lending", "liquidity_pool", "staking", "yield_farming", "auto_compounding"]
SortKey = Literal["apy", "tvl", "score", "risk"]
SortDirection = Literal["asc", "desc"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Fees(BaseModel):
    deposit_fee: float = Field(0.0, ge=0, le=100)
    withdrawal_fee: float = Field(0.0, ge=0, le=100)
    performance_fee: float = Field(0.0, ge=0, le=100)

    model_config = {"frozen": True}

    @property
    def total(self) -> float:
        return self.deposit_fee + self.withdrawal_fee + self.performance_fee


class Opportunity(BaseModel):
    """Point-in-time snapshot of one yield position, rebuilt every cycle."""

    protocol: str
    pool_id: str
    pool_name: str
    protocol_type: Optional[ProtocolType] = None
    contract_address: Optional[str] = None

    apy: float = Field(ge=0)
    tvl: float = Field(ge=0)
    volume_24h: Optional[float] = Field(None, ge=0)
    fees: Fees = Fees()

    risk_level: RiskLevel
    impermanent_loss_risk: bool = False
    risk_factors: list[str] = []
    audit_status: Optional[AuditStatus] = None

    lock_period_days: int = Field(0, ge=0)
    min_deposit_sats: int = Field(0, ge=0)

    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[str, str]:
        return (self.protocol, self.pool_id)


class UserProfile(BaseModel):
    deposit_amount_sats: int = Field(gt=0)
    risk_tolerance: RiskTolerance
    min_apy: Optional[float] = Field(None, ge=0)
    max_lock_period_days: Optional[int] = Field(None, ge=0)
    avoid_impermanent_loss: bool = False
    preferred_protocols: frozenset[str] = frozenset()

    model_config = {"frozen": True}


class FilterCriteria(BaseModel):
    min_apy: Optional[float] = None
    max_apy: Optional[float] = None
    min_tvl: Optional[float] = None
    max_risk_level: Optional[RiskLevel] = None
    no_impermanent_loss: bool = False
    protocols: Optional[frozenset[str]] = None
    max_lock_period_days: Optional[int] = None

    model_config = {"frozen": True}


class PrimaryPick(BaseModel):
    protocol: str
    pool_id: str
    pool_name: str
    apy: float
    risk_level: RiskLevel
    impermanent_loss_risk: bool


class Alternative(BaseModel):
    protocol: str
    pool_id: str
    pool_name: str
    apy: float
    tvl: float
    risk_level: RiskLevel
    pros: str
    cons: str


class ProjectedEarnings(BaseModel):
    daily: float
    monthly: float
    yearly: float


class Recommendation(BaseModel):
    primary: PrimaryPick
    alternatives: list[Alternative] = Field(default_factory=list, max_length=3)
    reasoning: str
    risk_assessment: str
    warnings: list[str] = []
    disclaimers: list[str] = []
    projected_earnings: ProjectedEarnings
    confidence_score: float = Field(ge=0, le=1)
    source: Literal["model", "rule_based"]
    data_freshness_seconds: float = 0.0
    generated_at: datetime = Field(default_factory=utcnow)


class ProtocolData(BaseModel):
    protocol: str
    opportunities: list[Opportunity] = []
    total_tvl: float = 0.0
    fetched_at: datetime = Field(default_factory=utcnow)
    success: bool = True
    error: Optional[str] = None


class HighestApy(BaseModel):
    protocol: str
    pool_id: str
    apy: float


class LowestRisk(BaseModel):
    protocol: str
    pool_id: str
    tvl: float


class AggregatedYields(BaseModel):
    protocols: list[ProtocolData] = []
    total_opportunities: int = 0
    total_tvl: float = 0.0
    highest_apy: Optional[HighestApy] = None
    lowest_risk: Optional[LowestRisk] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def opportunities(self) -> list[Opportunity]:
        return [opp for p in self.protocols for opp in p.opportunities]


class OracleReading(BaseModel):
    apy_bps: int = Field(ge=0, le=10_000)
    tvl_sats: int = Field(ge=0)

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    pushed: bool
    reason: str
    tx_hash: Optional[str] = None
    reading: Optional[dict[str, OracleReading]] = None


class SyncStats(BaseModel):
    last_sync_attempt: Optional[datetime] = None
    last_successful_sync: Optional[datetime] = None
    total_syncs: int = 0
    failed_syncs: int = 0
    last_error: Optional[str] = None


class OnChainState(BaseModel):
    """Values currently stored in the pool oracle contract (A, B in tracked order)."""

    apy_a: int
    apy_b: int
    tvl_a: int
    tvl_b: int
    updated_at: int


class OracleStatusResponse(BaseModel):
    running: bool
    syncing: bool
    interval_seconds: int
    baseline: Optional[dict[str, OracleReading]] = None
    on_chain: Optional[OnChainState] = None
    stats: SyncStats


class HealthResponse(BaseModel):
    status: str = "ok"
    agent: str = AGENT_NAME
    version: str = "1.0.0"
    model_enabled: bool = False
    oracle_sync_running: bool = False
