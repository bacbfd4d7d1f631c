"""Content-addressed cache of final identification responses."""

import json
import logging
import zlib
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.orm import Session

from foragelens.models import LLMCacheEntry
from foragelens.models.schemas import LLMMessage

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "llm-"
DEFAULT_TTL_DAYS = 7


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _cutoff(ttl_days: float, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(days=ttl_days)


def serialize_messages(messages: Sequence[LLMMessage]) -> str:
    payload = [message.model_dump(mode="json", exclude_none=True) for message in messages]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def build_cache_key(messages: Sequence[LLMMessage]) -> str:
    """Checksum key: CRC-32 and Adler-32 of the canonical JSON plus its byte length."""
    data = serialize_messages(messages).encode("utf-8")
    return f"{CACHE_KEY_PREFIX}{zlib.crc32(data):08x}{zlib.adler32(data):08x}{len(data):x}"


def get_cached_response(
    db: Session,
    cache_key: str,
    ttl_days: float = DEFAULT_TTL_DAYS,
    now: Optional[datetime] = None,
) -> Optional[str]:
    entry = db.get(LLMCacheEntry, cache_key)
    if entry is None:
        return None
    if _as_utc(entry.created_at) < _cutoff(ttl_days, now):
        logger.debug(f"Cache entry {cache_key} expired")
        return None
    return entry.response


def set_cached_response(db: Session, cache_key: str, response: str) -> None:
    entry = db.get(LLMCacheEntry, cache_key)
    if entry is None:
        db.add(LLMCacheEntry(cache_key=cache_key, response=response))
    else:
        entry.response = response
        entry.created_at = datetime.now(timezone.utc)
    db.commit()


def clear_expired_cache(
    db: Session,
    ttl_days: float = DEFAULT_TTL_DAYS,
    now: Optional[datetime] = None,
) -> int:
    result = db.execute(
        delete(LLMCacheEntry)
        .where(LLMCacheEntry.created_at < _cutoff(ttl_days, now))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    removed = result.rowcount or 0
    logger.info(f"Removed {removed} expired cache entries")
    return removed
