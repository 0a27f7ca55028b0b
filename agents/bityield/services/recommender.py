"""
Recommendation Engine - asks the model first, then falls back to the
rule-based recommender.

The model stage never raises: it returns a tagged ModelAttempt
(ok / unavailable / invalid) and the orchestrator decides whether to run
the fallback stage. Callers only see the final Recommendation, whose
`source` tells which path answered.
"""
import asyncio
import json
from pathlib import Path
from typing import Callable, Literal, Optional
from pydantic import BaseModel, Field, ValidationError
from shared import claude_client
from agents.bityield.models.schemas import (
    Alternative,
    Opportunity,
    PrimaryPick,
    Recommendation,
    UserProfile,
)
from agents.bityield.services import fallback
from agents.bityield.errors import ModelResponseError, NoSuitableOpportunitiesError
from agents.bityield.config import AI_ENABLED, AI_TIMEOUT_SECONDS, DISCLAIMERS, MAX_ALTERNATIVES
from shared.config import settings
import structlog

logger = structlog.get_logger()

PROMPT_PATH = Path(__file__).parent.parent / "templates" / "recommendation_prompt.txt"
_system_prompt: str | None = None


def _get_system_prompt() -> str:
    global _system_prompt
    if _system_prompt is None:
        _system_prompt = PROMPT_PATH.read_text(encoding="utf-8")
    return _system_prompt


class ModelAlternative(BaseModel):
    protocol: str
    pool_id: str
    pros: str = ""
    cons: str = ""


class ModelPayload(BaseModel):
    """Shape the model must answer with."""

    protocol: str
    pool_id: str
    reasoning: str = Field(min_length=1)
    risk_assessment: str = Field(min_length=1)
    alternatives: list[ModelAlternative] = Field(default_factory=list, max_length=MAX_ALTERNATIVES)
    warnings: list[str] = []
    confidence_score: float = Field(ge=0, le=1)


class ModelAttempt(BaseModel):
    status: Literal["ok", "unavailable", "invalid"]
    recommendation: Optional[Recommendation] = None
    detail: str = ""


def _format_usd(amount: float) -> str:
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.2f}M"
    if amount >= 1000:
        return f"${amount / 1000:.1f}K"
    return f"${amount:.0f}"


def build_prompt(opportunities: list[Opportunity], profile: UserProfile) -> str:
    summary = [
        {
            "protocol": opp.protocol,
            "pool_id": opp.pool_id,
            "pool_name": opp.pool_name,
            "type": opp.protocol_type,
            "apy": f"{opp.apy:.2f}%",
            "tvl": _format_usd(opp.tvl),
            "risk_level": opp.risk_level,
            "lock_period": f"{opp.lock_period_days} days" if opp.lock_period_days else "none",
            "fees": {
                "deposit": f"{opp.fees.deposit_fee:g}%",
                "withdrawal": f"{opp.fees.withdrawal_fee:g}%",
                "performance": f"{opp.fees.performance_fee:g}%",
            },
            "impermanent_loss": opp.impermanent_loss_risk,
            "audit_status": opp.audit_status or "unknown",
            "risk_factors": opp.risk_factors,
        }
        for opp in opportunities
    ]

    lines = [
        "MY PROFILE:",
        f"- Deposit: {profile.deposit_amount_sats / 100_000_000:.4f} BTC ({profile.deposit_amount_sats} sats)",
        f"- Risk tolerance: {profile.risk_tolerance}",
    ]
    if profile.min_apy is not None:
        lines.append(f"- Minimum APY: {profile.min_apy}%")
    if profile.avoid_impermanent_loss:
        lines.append("- Avoid impermanent loss: yes")
    if profile.max_lock_period_days is not None:
        lines.append(f"- Max lock period: {profile.max_lock_period_days} days")
    if profile.preferred_protocols:
        lines.append(f"- Preferred protocols: {', '.join(sorted(profile.preferred_protocols))}")

    lines += [
        "",
        f"AVAILABLE OPPORTUNITIES ({len(summary)} total):",
        json.dumps(summary, indent=2),
    ]
    return "\n".join(lines)


def build_model_recommendation(
    payload: ModelPayload,
    opportunities: list[Opportunity],
    profile: UserProfile,
) -> Recommendation:
    """Resolve the model's picks against the input set. Picks must pass the same
    profile filter as the rule-based path. Every number in the result comes
    from our own data, never from the model."""
    by_key = {opp.key: opp for opp in opportunities}
    eligible = {opp.key for opp in fallback.filter_for_profile(opportunities, profile)}

    primary = by_key.get((payload.protocol, payload.pool_id))
    if primary is None:
        raise ModelResponseError(f"Unknown primary pool {payload.protocol}/{payload.pool_id}")
    if primary.key not in eligible:
        raise ModelResponseError(f"Primary pool {payload.protocol}/{payload.pool_id} does not fit the profile")

    seen = {primary.key}
    alternatives = []
    for alt in payload.alternatives:
        opp = by_key.get((alt.protocol, alt.pool_id))
        if opp is None:
            raise ModelResponseError(f"Unknown alternative pool {alt.protocol}/{alt.pool_id}")
        if opp.key not in eligible:
            raise ModelResponseError(f"Alternative pool {alt.protocol}/{alt.pool_id} does not fit the profile")
        if opp.key in seen:
            raise ModelResponseError(f"Duplicate pool {alt.protocol}/{alt.pool_id}")
        seen.add(opp.key)
        alternatives.append(Alternative(
            protocol=opp.protocol,
            pool_id=opp.pool_id,
            pool_name=opp.pool_name,
            apy=opp.apy,
            tvl=opp.tvl,
            risk_level=opp.risk_level,
            pros=alt.pros or fallback.generate_pros(opp),
            cons=alt.cons or fallback.generate_cons(opp),
        ))

    return Recommendation(
        primary=PrimaryPick(
            protocol=primary.protocol,
            pool_id=primary.pool_id,
            pool_name=primary.pool_name,
            apy=primary.apy,
            risk_level=primary.risk_level,
            impermanent_loss_risk=primary.impermanent_loss_risk,
        ),
        alternatives=alternatives,
        reasoning=payload.reasoning,
        risk_assessment=payload.risk_assessment,
        warnings=payload.warnings,
        disclaimers=list(DISCLAIMERS),
        projected_earnings=fallback.calculate_earnings(profile.deposit_amount_sats, primary.apy),
        confidence_score=payload.confidence_score,
        source="model",
        data_freshness_seconds=fallback.data_freshness_seconds(opportunities),
    )


class RecommendationEngine:
    def __init__(
        self,
        model_enabled: bool = AI_ENABLED,
        timeout: float = AI_TIMEOUT_SECONDS,
        ask_json: Callable[..., dict] | None = None,
    ):
        self.model_enabled = model_enabled
        self.timeout = timeout
        self._ask_json = ask_json

    @property
    def model_available(self) -> bool:
        if not self.model_enabled:
            return False
        return self._ask_json is not None or claude_client.is_configured()

    async def attempt_model(self, opportunities: list[Opportunity], profile: UserProfile) -> ModelAttempt:
        if not self.model_available:
            return ModelAttempt(status="unavailable", detail="model disabled")

        ask_json = self._ask_json or claude_client.ask_claude_json
        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    ask_json,
                    system_prompt=_get_system_prompt(),
                    user_message=build_prompt(opportunities, profile),
                    max_tokens=settings.AI_MAX_TOKENS,
                    temperature=settings.AI_TEMPERATURE,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return ModelAttempt(status="unavailable", detail=f"timed out after {self.timeout}s")
        except ValueError as e:
            # JSONDecodeError is a ValueError
            return ModelAttempt(status="invalid", detail=f"unparseable response: {e}")
        except Exception as e:
            return ModelAttempt(status="unavailable", detail=str(e) or type(e).__name__)

        try:
            payload = ModelPayload.model_validate(raw)
            recommendation = build_model_recommendation(payload, opportunities, profile)
        except (ValidationError, ModelResponseError) as e:
            return ModelAttempt(status="invalid", detail=str(e))

        return ModelAttempt(status="ok", recommendation=recommendation)

    async def get_recommendation(self, opportunities: list[Opportunity], profile: UserProfile) -> Recommendation:
        if not fallback.filter_for_profile(opportunities, profile):
            logger.warning(
                "no_suitable_opportunities",
                opportunity_count=len(opportunities),
                risk_tolerance=profile.risk_tolerance,
            )
            raise NoSuitableOpportunitiesError()

        attempt = await self.attempt_model(opportunities, profile)
        if attempt.status == "ok":
            rec = attempt.recommendation
            logger.info(
                "model_recommendation",
                protocol=rec.primary.protocol,
                pool_id=rec.primary.pool_id,
                confidence=rec.confidence_score,
            )
            return rec

        if attempt.status == "invalid":
            logger.warning("model_response_rejected", detail=attempt.detail)
        elif self.model_enabled:
            logger.warning("model_unavailable", detail=attempt.detail)

        return fallback.recommend(opportunities, profile)
