import pytest

from agents.bityield.models.schemas import FilterCriteria
from agents.bityield.services.aggregator import (
    YieldAggregator,
    filter_opportunities,
    sort_opportunities,
    top_opportunities,
)


async def test_aggregate_merges_all_protocols(fake_adapter, sample_opportunities):
    alex = [o for o in sample_opportunities if o.protocol == "alex"]
    velar = [o for o in sample_opportunities if o.protocol == "velar"]
    aggregator = YieldAggregator([fake_adapter("alex", alex), fake_adapter("velar", velar)])

    result = await aggregator.aggregate()

    assert result.total_opportunities == 3
    assert [p.protocol for p in result.protocols] == ["alex", "velar"]
    assert all(p.success for p in result.protocols)
    assert result.total_tvl == pytest.approx(6_000_000 + 3_000_000 + 8_000_000)
    assert result.highest_apy.pool_id == "velar-sbtc-stx"
    assert result.highest_apy.apy == 22.5
    assert [o.pool_id for o in result.opportunities] == [o.pool_id for o in alex + velar]


async def test_one_failing_adapter_does_not_abort(fake_adapter, sample_opportunities):
    velar = [o for o in sample_opportunities if o.protocol == "velar"]
    aggregator = YieldAggregator([
        fake_adapter("alex", error=RuntimeError("upstream 502")),
        fake_adapter("velar", velar),
    ])

    result = await aggregator.aggregate()

    failed = result.protocols[0]
    assert failed.success is False
    assert failed.opportunities == []
    assert failed.total_tvl == 0
    assert "upstream 502" in failed.error
    assert result.total_opportunities == 1
    assert result.total_tvl == pytest.approx(8_000_000)


async def test_slow_adapter_times_out(fake_adapter, sample_opportunities):
    aggregator = YieldAggregator(
        [fake_adapter("slow", sample_opportunities, delay=1.0), fake_adapter("fast", sample_opportunities[:1])],
        adapter_timeout=0.05,
    )

    result = await aggregator.aggregate()

    assert result.protocols[0].success is False
    assert result.protocols[0].error == "timeout"
    assert result.total_opportunities == 1


async def test_aggregate_with_no_opportunities(fake_adapter):
    result = await YieldAggregator([fake_adapter("alex")]).aggregate()
    assert result.total_opportunities == 0
    assert result.highest_apy is None
    assert result.lowest_risk is None


async def test_lowest_risk_is_most_liquid_low_or_medium(fake_adapter, sample_opportunities):
    result = await YieldAggregator([fake_adapter("mixed", sample_opportunities)]).aggregate()
    assert result.lowest_risk.pool_id == "zest-sbtc-lending"


def test_filter_criteria_intersect(sample_opportunities):
    criteria = FilterCriteria(min_apy=10, max_risk_level="medium", no_impermanent_loss=True)
    result = filter_opportunities(sample_opportunities, criteria)
    assert [o.pool_id for o in result] == ["alex-sbtc-staking"]


def test_filter_min_tvl_and_protocols(sample_opportunities):
    criteria = FilterCriteria(min_tvl=5_000_000, protocols=frozenset({"alex", "zest"}))
    result = filter_opportunities(sample_opportunities, criteria)
    assert [o.pool_id for o in result] == ["zest-sbtc-lending", "alex-sbtc-staking"]


def test_filter_max_lock_period(sample_opportunities):
    result = filter_opportunities(sample_opportunities, FilterCriteria(max_lock_period_days=0))
    assert "alex-sbtc-staking" not in [o.pool_id for o in result]


@pytest.mark.parametrize(
    "criteria",
    [
        FilterCriteria(),
        FilterCriteria(min_apy=12),
        FilterCriteria(max_risk_level="low"),
        FilterCriteria(min_tvl=4_000_000, no_impermanent_loss=True),
        FilterCriteria(max_apy=20, max_risk_level="medium"),
    ],
)
def test_filter_is_idempotent(sample_opportunities, criteria):
    once = filter_opportunities(sample_opportunities, criteria)
    assert filter_opportunities(once, criteria) == once


def test_sort_by_apy_both_directions(sample_opportunities):
    desc = sort_opportunities(sample_opportunities, "apy", "desc")
    asc = sort_opportunities(sample_opportunities, "apy", "asc")
    assert [o.apy for o in desc] == [22.5, 15.0, 12.0, 8.5]
    assert [o.apy for o in asc] == [8.5, 12.0, 15.0, 22.5]


def test_sort_is_stable_on_ties(make_opportunity):
    opps = [make_opportunity(pool_id=f"p{i}", apy=5.0) for i in range(5)]
    for direction in ("asc", "desc"):
        result = sort_opportunities(opps, "apy", direction)
        assert [o.pool_id for o in result] == ["p0", "p1", "p2", "p3", "p4"]


def test_sort_by_tvl_and_risk(sample_opportunities):
    by_tvl = sort_opportunities(sample_opportunities, "tvl", "desc")
    assert by_tvl[0].pool_id == "zest-sbtc-lending"
    by_risk = sort_opportunities(sample_opportunities, "risk", "asc")
    assert [o.risk_level for o in by_risk] == ["low", "medium", "medium", "high"]


def test_sort_by_score_uses_profile(sample_opportunities, make_profile):
    conservative = sort_opportunities(
        sample_opportunities, "score", "desc", profile=make_profile(risk_tolerance="conservative")
    )
    aggressive = sort_opportunities(
        sample_opportunities, "score", "desc", profile=make_profile(risk_tolerance="aggressive")
    )
    assert conservative[0].pool_id == "zest-sbtc-lending"
    assert aggressive[0].pool_id == "velar-sbtc-stx"


def test_sort_rejects_unknown_key(sample_opportunities):
    with pytest.raises(ValueError):
        sort_opportunities(sample_opportunities, "volume")


def test_top_conservative_returns_only_low_risk(sample_opportunities):
    top = top_opportunities(sample_opportunities, 5, "conservative")
    assert top
    assert all(o.risk_level == "low" for o in top)


def test_top_moderate_excludes_high_risk_and_limits(sample_opportunities):
    top = top_opportunities(sample_opportunities, 2, "moderate")
    assert len(top) == 2
    assert all(o.risk_level in ("low", "medium") for o in top)


def test_top_aggressive_ranks_by_score(sample_opportunities):
    top = top_opportunities(sample_opportunities, 4, "aggressive")
    assert len(top) == 4
    assert top[0].pool_id == "velar-sbtc-stx"
