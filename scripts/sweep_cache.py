"""Delete expired identification responses from the response cache."""

import argparse
import logging
import sys

from foragelens.config import settings
from foragelens.models import init_db
from foragelens.models.database import SessionLocal
from foragelens.services.response_cache import clear_expired_cache

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def sweep(ttl_days: float) -> int:
    init_db()
    db = SessionLocal()
    try:
        return clear_expired_cache(db, ttl_days)
    except Exception as e:
        db.rollback()
        logger.error(f"✗ Error sweeping cache: {e}")
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Remove expired entries from the ForageLens response cache")
    parser.add_argument(
        "--ttl-days",
        type=float,
        default=settings.cache_ttl_days,
        help=f"Entries older than this many days are removed (default: {settings.cache_ttl_days})",
    )
    args = parser.parse_args()

    if args.ttl_days < 0:
        print("--ttl-days must not be negative")
        sys.exit(2)

    try:
        removed = sweep(args.ttl_days)
    except Exception as e:
        print(f"\n❌ Error: {e}")
        sys.exit(1)
    print(f"✅ Removed {removed} expired cache entries")


if __name__ == "__main__":
    main()
