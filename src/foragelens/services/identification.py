import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
from sqlalchemy.orm import Session

from foragelens.config import LLMSettings
from foragelens.errors import BudgetExceededError, EmptyConversationError, NoApiKeyError
from foragelens.models.schemas import LLMMessage
from foragelens.services.cost_tracker import UsageRecord, is_within_budget, record_usage
from foragelens.services.identification_pipeline import (
    PipelineCallbacks,
    PipelineResult,
    run_identification_pipeline,
)
from foragelens.services.pricing import estimate_cost
from foragelens.services.response_cache import (
    DEFAULT_TTL_DAYS,
    build_cache_key,
    get_cached_response,
    set_cached_response,
)
from foragelens.services.species_dataset import SpeciesEntry

logger = logging.getLogger(__name__)


@dataclass
class IdentificationOutcome:
    response: str
    cached: bool
    pipeline: Optional[PipelineResult] = None


class IdentificationService:
    """Gate the identification pipeline behind the response cache and the monthly budget."""

    def __init__(
        self,
        db: Session,
        settings: LLMSettings,
        dataset: Sequence[SpeciesEntry],
        api_key: Optional[str] = None,
        require_api_key: bool = True,
        cache_ttl_days: float = DEFAULT_TTL_DAYS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.db = db
        self.settings = settings
        self.dataset = dataset
        self.api_key = api_key
        self.require_api_key = require_api_key
        self.cache_ttl_days = cache_ttl_days
        self.client = client

    async def identify(
        self,
        messages: Sequence[LLMMessage],
        callbacks: Optional[PipelineCallbacks] = None,
    ) -> IdentificationOutcome:
        if not any(message.role == "user" for message in messages):
            raise EmptyConversationError()

        cache_key = build_cache_key(messages)
        cached = get_cached_response(self.db, cache_key, self.cache_ttl_days)
        if cached is not None:
            logger.info(f"Cache hit for {cache_key}")
            return IdentificationOutcome(response=cached, cached=True)
        logger.info(f"Cache miss for {cache_key}")

        if not is_within_budget(self.db, self.settings.budget_limit_usd):
            raise BudgetExceededError()

        if not self.api_key and self.require_api_key:
            raise NoApiKeyError()

        result = await run_identification_pipeline(
            messages,
            self.api_key,
            self.settings,
            self.dataset,
            callbacks=callbacks,
            client=self.client,
        )

        usage = result.usage
        record_usage(
            self.db,
            UsageRecord(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                estimated_cost_usd=estimate_cost(usage.prompt_tokens, usage.completion_tokens, self.settings.model),
                cache_hit=False,
            ),
        )
        if result.response:
            set_cached_response(self.db, cache_key, result.response)
        return IdentificationOutcome(response=result.response, cached=False, pipeline=result)
