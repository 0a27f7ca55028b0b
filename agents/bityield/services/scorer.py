"""
Yield Scorer - multi-factor desirability score for an opportunity given a
depositor's risk tolerance and protocol preferences.

    score = apy × log10(max(tvl, 1000)) × risk_factor × preference_bonus
            × lock_penalty × fee_penalty
"""
import math
from collections.abc import Iterable
from agents.bityield.models.schemas import Opportunity, UserProfile
from agents.bityield.config import (
    ALLOWED_RISK_LEVELS,
    LOCK_PENALTY,
    MIN_FEE_PENALTY,
    PREFERRED_PROTOCOL_BONUS,
    RISK_MULTIPLIERS,
    TVL_FLOOR_USD,
)


def risk_factor(risk_tolerance: str, risk_level: str) -> float:
    return RISK_MULTIPLIERS[risk_tolerance][risk_level]


def fee_penalty(opp: Opportunity) -> float:
    return max(MIN_FEE_PENALTY, 1 - opp.fees.total / 100)


def lock_penalty(opp: Opportunity) -> float:
    return LOCK_PENALTY if opp.lock_period_days > 0 else 1.0


def score_for_tolerance(
    opp: Opportunity,
    risk_tolerance: str,
    preferred_protocols: Iterable[str] = (),
) -> float:
    if opp.apy == 0:
        return 0.0
    tvl_score = math.log10(max(opp.tvl, TVL_FLOOR_USD))
    bonus = PREFERRED_PROTOCOL_BONUS if opp.protocol in set(preferred_protocols) else 1.0
    return (
        opp.apy
        * tvl_score
        * risk_factor(risk_tolerance, opp.risk_level)
        * bonus
        * lock_penalty(opp)
        * fee_penalty(opp)
    )


def score(opp: Opportunity, profile: UserProfile) -> float:
    """Score an opportunity for a profile. Pure; higher is better."""
    return score_for_tolerance(opp, profile.risk_tolerance, profile.preferred_protocols)


def is_risk_allowed(risk_level: str, risk_tolerance: str) -> bool:
    return risk_level in ALLOWED_RISK_LEVELS[risk_tolerance]
