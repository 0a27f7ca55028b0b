import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from agents.bityield.models.schemas import Fees, Opportunity, UserProfile


def _make_opportunity(**overrides) -> Opportunity:
    fields = {
        "protocol": "alex",
        "pool_id": "pool-1",
        "pool_name": "sBTC-STX LP",
        "apy": 10.0,
        "tvl": 10_000_000,
        "risk_level": "low",
        "impermanent_loss_risk": False,
        "risk_factors": ["Smart contract risk"],
        "audit_status": "audited",
    }
    fees = overrides.pop("fees", None)
    fields.update(overrides)
    if fees is not None:
        fields["fees"] = Fees(**fees) if isinstance(fees, dict) else fees
    return Opportunity(**fields)


class FakeAdapter:
    def __init__(self, name, opportunities=None, error=None, delay=0.0):
        self.name = name
        self.opportunities = opportunities or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_opportunities(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.opportunities)


class FakePriceFeed:
    def __init__(self, price=100_000.0):
        self.price = price

    async def get_btc_usd(self):
        return self.price


class FakeSubmitter:
    def __init__(self, error=None, read_error=None):
        self.error = error
        self.read_error = read_error
        self.calls = []

    def submit(self, apy_a, apy_b, tvl_a, tvl_b):
        self.calls.append((apy_a, apy_b, tvl_a, tvl_b))
        if self.error is not None:
            raise self.error
        return f"0x{len(self.calls):064x}"

    def read_state(self):
        if self.read_error is not None:
            raise self.read_error
        apy_a, apy_b, tvl_a, tvl_b = self.calls[-1] if self.calls else (0, 0, 0, 0)
        return {
            "apy_a": apy_a,
            "apy_b": apy_b,
            "tvl_a": tvl_a,
            "tvl_b": tvl_b,
            "updated_at": 1_700_000_000 if self.calls else 0,
        }


@pytest.fixture
def make_opportunity():
    return _make_opportunity


@pytest.fixture
def make_profile():
    def _make(**overrides):
        fields = {"deposit_amount_sats": 100_000_000, "risk_tolerance": "moderate"}
        fields.update(overrides)
        return UserProfile(**fields)

    return _make


@pytest.fixture
def sample_opportunities():
    """Lending, LP and staking pools across two protocols."""
    return [
        _make_opportunity(
            protocol="zest",
            pool_id="zest-sbtc-lending",
            pool_name="Zest sBTC Lending Pool",
            protocol_type="lending",
            apy=8.5,
            tvl=15_000_000,
            risk_level="low",
            fees={"performance_fee": 10},
        ),
        _make_opportunity(
            protocol="velar",
            pool_id="velar-sbtc-stx",
            pool_name="sBTC-STX LP",
            protocol_type="liquidity_pool",
            apy=22.5,
            tvl=8_000_000,
            risk_level="high",
            impermanent_loss_risk=True,
            fees={"withdrawal_fee": 0.1},
        ),
        _make_opportunity(
            protocol="alex",
            pool_id="alex-sbtc-staking",
            pool_name="sBTC Staking",
            protocol_type="staking",
            apy=12.0,
            tvl=6_000_000,
            risk_level="medium",
            lock_period_days=7,
        ),
        _make_opportunity(
            protocol="alex",
            pool_id="alex-sbtc-stx-lp",
            pool_name="ALEX sBTC-STX Pool",
            protocol_type="liquidity_pool",
            apy=15.0,
            tvl=3_000_000,
            risk_level="medium",
            impermanent_loss_risk=True,
            audit_status="unaudited",
        ),
    ]


@pytest.fixture
def fake_adapter():
    return FakeAdapter


@pytest.fixture
def fake_price_feed():
    return FakePriceFeed


@pytest.fixture
def fake_submitter():
    return FakeSubmitter


@pytest.fixture
def stale_timestamp():
    return datetime.now(timezone.utc) - timedelta(minutes=30)
