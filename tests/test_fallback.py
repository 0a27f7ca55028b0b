from datetime import datetime, timedelta, timezone

import pytest

from agents.bityield.errors import NoSuitableOpportunitiesError
from agents.bityield.services import fallback


def test_projected_earnings_reference_scenario():
    earnings = fallback.calculate_earnings(100_000_000, 12.61)
    assert earnings.yearly == pytest.approx(12_610_000)
    assert earnings.monthly == pytest.approx(1_050_833, abs=1)
    assert earnings.daily == pytest.approx(34_548, abs=1)


def test_conservative_profile_gets_low_risk_pool(sample_opportunities, make_profile):
    rec = fallback.recommend(sample_opportunities, make_profile(risk_tolerance="conservative"))

    assert rec.source == "rule_based"
    assert rec.primary.pool_id == "zest-sbtc-lending"
    assert rec.primary.risk_level == "low"
    assert rec.alternatives == []
    assert rec.confidence_score == pytest.approx(0.9)


def test_moderate_profile_ranks_by_score(sample_opportunities, make_profile):
    rec = fallback.recommend(sample_opportunities, make_profile(risk_tolerance="moderate"))

    assert rec.primary.pool_id == "alex-sbtc-stx-lp"
    assert [a.pool_id for a in rec.alternatives] == ["alex-sbtc-staking", "zest-sbtc-lending"]
    assert rec.confidence_score == pytest.approx(0.6)
    assert "Protocol is not audited - higher smart contract risk" in rec.warnings


def test_aggressive_profile_has_three_alternatives(sample_opportunities, make_profile):
    rec = fallback.recommend(sample_opportunities, make_profile(risk_tolerance="aggressive"))

    assert rec.primary.pool_id == "velar-sbtc-stx"
    assert len(rec.alternatives) == 3
    input_ids = {o.pool_id for o in sample_opportunities}
    assert rec.primary.pool_id in input_ids
    assert all(a.pool_id in input_ids for a in rec.alternatives)
    assert rec.primary.pool_id not in [a.pool_id for a in rec.alternatives]


def test_profile_constraints_are_applied(sample_opportunities, make_profile):
    no_il = fallback.recommend(sample_opportunities, make_profile(avoid_impermanent_loss=True))
    assert no_il.primary.pool_id == "alex-sbtc-staking"

    no_lock = fallback.recommend(sample_opportunities, make_profile(max_lock_period_days=0))
    assert no_lock.primary.pool_id == "alex-sbtc-stx-lp"
    assert "alex-sbtc-staking" not in [a.pool_id for a in no_lock.alternatives]


def test_no_candidates_raises(sample_opportunities, make_profile):
    with pytest.raises(NoSuitableOpportunitiesError):
        fallback.recommend(sample_opportunities, make_profile(min_apy=50))


def test_empty_input_raises(make_profile):
    with pytest.raises(NoSuitableOpportunitiesError):
        fallback.recommend([], make_profile())


def test_preferred_protocol_tips_the_choice(make_opportunity, make_profile):
    opps = [
        make_opportunity(protocol="zest", pool_id="a", apy=10.0),
        make_opportunity(protocol="velar", pool_id="b", apy=9.0),
    ]
    assert fallback.recommend(opps, make_profile()).primary.pool_id == "a"
    preferred = make_profile(preferred_protocols=frozenset({"velar"}))
    assert fallback.recommend(opps, preferred).primary.pool_id == "b"


@pytest.mark.parametrize(
    "overrides,tolerance,expected",
    [
        ({"tvl": 20_000_000, "audit_status": "audited"}, "moderate", 0.9),
        ({"tvl": 6_000_000, "audit_status": "audited"}, "moderate", 0.8),
        ({"tvl": 1_000_000, "audit_status": "unaudited"}, "moderate", 0.6),
        ({"tvl": 20_000_000, "apy": 150, "audit_status": "audited"}, "moderate", 0.7),
        ({"tvl": 1_000_000, "apy": 150, "audit_status": "unaudited"}, "moderate", 0.4),
        ({"tvl": 1_000_000, "apy": 150, "risk_level": "high", "audit_status": None}, "conservative", 0.3),
    ],
)
def test_confidence_adjustments(make_opportunity, make_profile, overrides, tolerance, expected):
    opp = make_opportunity(**overrides)
    assert fallback.calculate_confidence(opp, make_profile(risk_tolerance=tolerance)) == pytest.approx(expected)


def test_warnings_for_outliers(make_opportunity):
    opp = make_opportunity(apy=75, tvl=500_000, audit_status="in_progress")
    warnings = fallback.generate_warnings(opp)
    assert len(warnings) == 3
    assert warnings[0].startswith("Extremely high APY")


def test_risk_assessment_mentions_lock_and_il(make_opportunity):
    opp = make_opportunity(lock_period_days=30, impermanent_loss_risk=True, tvl=2_000_000,
                           risk_factors=["Oracle dependency"])
    text = fallback.generate_risk_assessment(opp)
    assert "impermanent loss" in text
    assert "30 days" in text
    assert "Oracle dependency" in text
    assert text.endswith(".")


def test_reasoning_is_deterministic(sample_opportunities, make_profile):
    profile = make_profile(risk_tolerance="conservative")
    first = fallback.recommend(sample_opportunities, profile)
    second = fallback.recommend(sample_opportunities, profile)
    assert first.reasoning == second.reasoning
    assert first.reasoning.startswith("This zest lending aligns with your conservative risk profile")
    assert "$15.0M TVL" in first.reasoning


def test_pros_and_cons(make_opportunity):
    opp = make_opportunity(apy=3, tvl=1_500_000, risk_level="high", lock_period_days=14,
                           fees={"performance_fee": 20})
    assert fallback.generate_cons(opp) == "Lower APY, Limited liquidity, Higher risk, 14-day lock, 20% performance fee"
    assert fallback.generate_pros(opp) == "Audited protocol, No IL risk"


def test_data_freshness_uses_oldest(make_opportunity):
    now = datetime.now(timezone.utc)
    opps = [
        make_opportunity(pool_id="new", updated_at=now - timedelta(seconds=10)),
        make_opportunity(pool_id="old", updated_at=now - timedelta(seconds=600)),
    ]
    assert fallback.data_freshness_seconds(opps, now=now) == pytest.approx(600)
    assert fallback.data_freshness_seconds([], now=now) == 0.0


def test_disclaimers_are_fixed(sample_opportunities, make_profile):
    rec = fallback.recommend(sample_opportunities, make_profile())
    assert rec.disclaimers[0] == "DeFi yields are volatile and not guaranteed"
    assert len(rec.disclaimers) == 4
