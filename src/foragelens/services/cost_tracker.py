import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.orm import Session

from foragelens.models import LLMUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageRecord:
    prompt_tokens: int
    completion_tokens: int
    estimated_cost_usd: float
    cache_hit: bool = False
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class MonthlyUsage:
    spend_usd: float
    prompt_tokens: int
    completion_tokens: int
    requests: int
    cache_hits: int


def month_start(now: Optional[datetime] = None) -> datetime:
    current = now or datetime.now(timezone.utc)
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def record_usage(db: Session, record: UsageRecord) -> LLMUsage:
    row = LLMUsage(
        timestamp=record.timestamp or datetime.now(timezone.utc),
        prompt_tokens=record.prompt_tokens,
        completion_tokens=record.completion_tokens,
        estimated_cost_usd=record.estimated_cost_usd,
        cache_hit=record.cache_hit,
    )
    db.add(row)
    db.commit()
    return row


def get_monthly_spend(db: Session, now: Optional[datetime] = None) -> float:
    total = db.scalar(
        select(func.coalesce(func.sum(LLMUsage.estimated_cost_usd), 0.0)).where(
            LLMUsage.timestamp >= month_start(now)
        )
    )
    return float(total or 0.0)


def is_within_budget(db: Session, budget_limit_usd: float, now: Optional[datetime] = None) -> bool:
    spent = get_monthly_spend(db, now)
    if spent >= budget_limit_usd:
        logger.warning(f"Monthly spend ${spent:.4f} reached budget ${budget_limit_usd:.2f}")
        return False
    return True


def get_monthly_usage_summary(db: Session, now: Optional[datetime] = None) -> MonthlyUsage:
    row = db.execute(
        select(
            func.coalesce(func.sum(LLMUsage.estimated_cost_usd), 0.0),
            func.coalesce(func.sum(LLMUsage.prompt_tokens), 0),
            func.coalesce(func.sum(LLMUsage.completion_tokens), 0),
            func.count(LLMUsage.id),
            func.coalesce(func.sum(cast(LLMUsage.cache_hit, Integer)), 0),
        ).where(LLMUsage.timestamp >= month_start(now))
    ).one()
    return MonthlyUsage(
        spend_usd=float(row[0]),
        prompt_tokens=int(row[1]),
        completion_tokens=int(row[2]),
        requests=int(row[3]),
        cache_hits=int(row[4]),
    )
