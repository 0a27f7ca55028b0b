"""
Rule-based recommender - deterministic path used whenever the model path is
disabled, unavailable or returns something we can't trust.
"""
from datetime import datetime, timezone
from agents.bityield.models.schemas import (
    Alternative,
    Opportunity,
    PrimaryPick,
    ProjectedEarnings,
    Recommendation,
    UserProfile,
)
from agents.bityield.services.scorer import is_risk_allowed, score
from agents.bityield.errors import NoSuitableOpportunitiesError
from agents.bityield.config import DAYS_PER_YEAR, DISCLAIMERS, MAX_ALTERNATIVES, MONTHS_PER_YEAR
import structlog

logger = structlog.get_logger()


def filter_for_profile(opportunities: list[Opportunity], profile: UserProfile) -> list[Opportunity]:
    result = []
    for opp in opportunities:
        if not is_risk_allowed(opp.risk_level, profile.risk_tolerance):
            continue
        if profile.min_apy is not None and opp.apy < profile.min_apy:
            continue
        if profile.avoid_impermanent_loss and opp.impermanent_loss_risk:
            continue
        if profile.max_lock_period_days is not None and opp.lock_period_days > profile.max_lock_period_days:
            continue
        result.append(opp)
    return result


def calculate_earnings(amount_sats: int, apy: float) -> ProjectedEarnings:
    yearly = amount_sats * apy / 100
    return ProjectedEarnings(
        daily=round(yearly / DAYS_PER_YEAR, 2),
        monthly=round(yearly / MONTHS_PER_YEAR, 2),
        yearly=round(yearly, 2),
    )


def calculate_confidence(opp: Opportunity, profile: UserProfile) -> float:
    confidence = 0.5

    if opp.tvl > 10_000_000:
        confidence += 0.2
    elif opp.tvl > 5_000_000:
        confidence += 0.1

    if opp.audit_status == "audited":
        confidence += 0.1

    if is_risk_allowed(opp.risk_level, profile.risk_tolerance):
        confidence += 0.1

    # Unusually high APY is rarely sustainable
    if opp.apy > 100:
        confidence -= 0.2

    return round(min(0.9, max(0.3, confidence)), 2)


def data_freshness_seconds(opportunities: list[Opportunity], now: datetime | None = None) -> float:
    """Age in seconds of the oldest opportunity."""
    if not opportunities:
        return 0.0
    now = now or datetime.now(timezone.utc)
    oldest = min(opp.updated_at for opp in opportunities)
    return max(0.0, (now - oldest).total_seconds())


def _format_usd_millions(amount: float) -> str:
    return f"${amount / 1_000_000:.1f}M"


def generate_pros(opp: Opportunity) -> str:
    pros = []
    if opp.apy > 15:
        pros.append("High APY")
    if opp.tvl > 10_000_000:
        pros.append("High liquidity")
    if opp.risk_level == "low":
        pros.append("Low risk")
    if opp.lock_period_days == 0:
        pros.append("No lock period")
    if opp.audit_status == "audited":
        pros.append("Audited protocol")
    if not opp.impermanent_loss_risk:
        pros.append("No IL risk")
    return ", ".join(pros) or "Stable returns"


def generate_cons(opp: Opportunity) -> str:
    cons = []
    if opp.apy < 5:
        cons.append("Lower APY")
    if opp.tvl < 2_000_000:
        cons.append("Limited liquidity")
    if opp.risk_level == "high":
        cons.append("Higher risk")
    if opp.lock_period_days > 0:
        cons.append(f"{opp.lock_period_days}-day lock")
    if opp.impermanent_loss_risk:
        cons.append("IL risk")
    if opp.fees.performance_fee > 5:
        cons.append(f"{opp.fees.performance_fee:g}% performance fee")
    return ", ".join(cons) or "Consider fees and risks"


def create_alternative(opp: Opportunity) -> Alternative:
    return Alternative(
        protocol=opp.protocol,
        pool_id=opp.pool_id,
        pool_name=opp.pool_name,
        apy=opp.apy,
        tvl=opp.tvl,
        risk_level=opp.risk_level,
        pros=generate_pros(opp),
        cons=generate_cons(opp),
    )


def generate_reasoning(opp: Opportunity, profile: UserProfile) -> str:
    parts = []
    kind = (opp.protocol_type or "pool").replace("_", " ")

    if profile.risk_tolerance == "conservative" and opp.risk_level == "low":
        parts.append(f"This {opp.protocol} {kind} aligns with your conservative risk profile")
    elif profile.risk_tolerance == "aggressive" and opp.apy > 15:
        parts.append(f"High {opp.apy:.1f}% APY matches your aggressive strategy")
    else:
        parts.append(f"Balanced {opp.apy:.1f}% APY with {opp.risk_level} risk suits your {profile.risk_tolerance} profile")

    if opp.tvl > 10_000_000:
        parts.append(f"with strong liquidity ({_format_usd_millions(opp.tvl)} TVL)")

    if opp.lock_period_days == 0 and not opp.impermanent_loss_risk:
        parts.append("offering flexible withdrawals without impermanent loss")
    elif opp.lock_period_days == 0:
        parts.append("with no lock-up period for flexibility")

    fees = opp.fees.total
    if fees > 0:
        parts.append(f"after {fees:g}% in combined fees")

    return " ".join(parts) + "."


def generate_risk_assessment(opp: Opportunity) -> str:
    risks = []
    if opp.impermanent_loss_risk:
        risks.append("Liquidity provision carries impermanent loss risk if token prices diverge")
    if opp.lock_period_days > 0:
        risks.append(f"Funds locked for {opp.lock_period_days} days - cannot withdraw early")
    if opp.risk_level == "high":
        risks.append("Higher risk due to protocol complexity or limited track record")
    if opp.tvl < 5_000_000:
        risks.append("Relatively low TVL may impact liquidity during high volatility")
    if opp.fees.performance_fee > 10:
        risks.append(f"{opp.fees.performance_fee:g}% performance fee reduces net returns")
    risks.extend(opp.risk_factors[:2])

    if not risks:
        return "Standard DeFi risks apply."
    return ". ".join(r.rstrip(".") for r in risks) + "."


def generate_warnings(opp: Opportunity) -> list[str]:
    warnings = []
    if opp.apy > 50:
        warnings.append("Extremely high APY may be unsustainable - proceed with caution")
    if opp.audit_status != "audited":
        warnings.append("Protocol is not audited - higher smart contract risk")
    if opp.tvl < 1_000_000:
        warnings.append("Low TVL - limited liquidity and higher risk")
    return warnings


def recommend(opportunities: list[Opportunity], profile: UserProfile) -> Recommendation:
    """Filter by profile, score survivors, pick the best and the next few as
    alternatives. Raises NoSuitableOpportunitiesError when nothing survives."""
    candidates = filter_for_profile(opportunities, profile)
    if not candidates:
        logger.warning(
            "no_suitable_opportunities",
            opportunity_count=len(opportunities),
            risk_tolerance=profile.risk_tolerance,
        )
        raise NoSuitableOpportunitiesError()

    ranked = sorted(candidates, key=lambda o: score(o, profile), reverse=True)
    primary = ranked[0]

    recommendation = Recommendation(
        primary=PrimaryPick(
            protocol=primary.protocol,
            pool_id=primary.pool_id,
            pool_name=primary.pool_name,
            apy=primary.apy,
            risk_level=primary.risk_level,
            impermanent_loss_risk=primary.impermanent_loss_risk,
        ),
        alternatives=[create_alternative(o) for o in ranked[1:1 + MAX_ALTERNATIVES]],
        reasoning=generate_reasoning(primary, profile),
        risk_assessment=generate_risk_assessment(primary),
        warnings=generate_warnings(primary),
        disclaimers=list(DISCLAIMERS),
        projected_earnings=calculate_earnings(profile.deposit_amount_sats, primary.apy),
        confidence_score=calculate_confidence(primary, profile),
        source="rule_based",
        data_freshness_seconds=data_freshness_seconds(opportunities),
    )

    logger.info(
        "rule_based_recommendation",
        protocol=primary.protocol,
        pool_id=primary.pool_id,
        score=round(score(primary, profile), 2),
        candidates=len(candidates),
    )
    return recommendation
