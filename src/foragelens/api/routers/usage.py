"""API router for spend reporting and cache maintenance."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from foragelens.config import settings
from foragelens.models import get_db
from foragelens.models.schemas import CacheSweepRequest, CacheSweepResponse, UsageSummaryResponse
from foragelens.services.cost_tracker import get_monthly_usage_summary
from foragelens.services.response_cache import clear_expired_cache

router = APIRouter()


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage(db: Session = Depends(get_db)) -> UsageSummaryResponse:
    summary = get_monthly_usage_summary(db)
    return UsageSummaryResponse(
        spend_usd=summary.spend_usd,
        prompt_tokens=summary.prompt_tokens,
        completion_tokens=summary.completion_tokens,
        requests=summary.requests,
        cache_hits=summary.cache_hits,
        budget_limit_usd=settings.budget_limit_usd,
        within_budget=summary.spend_usd < settings.budget_limit_usd,
    )


@router.post("/cache/sweep", response_model=CacheSweepResponse)
async def sweep_cache(
    payload: CacheSweepRequest = CacheSweepRequest(),
    db: Session = Depends(get_db),
) -> CacheSweepResponse:
    ttl_days = payload.ttl_days if payload.ttl_days is not None else settings.cache_ttl_days
    return CacheSweepResponse(removed=clear_expired_cache(db, ttl_days))
