from typing import Optional, Sequence

import httpx
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from foragelens.config import settings
from foragelens.models import get_db
from foragelens.services.conversation import ConversationService
from foragelens.services.identification import IdentificationService
from foragelens.services.species_dataset import SpeciesEntry


def get_species_dataset(request: Request) -> Sequence[SpeciesEntry]:
    dataset = getattr(request.app.state, "species_dataset", None)
    if not dataset:
        raise HTTPException(status_code=503, detail="Species dataset not loaded")
    return dataset


def get_llm_client() -> Optional[httpx.AsyncClient]:
    """Shared client for model calls; None lets each call open its own."""
    return None


def get_upstream_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None


def get_identification_service(
    db: Session = Depends(get_db),
    dataset: Sequence[SpeciesEntry] = Depends(get_species_dataset),
    client: Optional[httpx.AsyncClient] = Depends(get_llm_client),
) -> IdentificationService:
    return IdentificationService(
        db,
        settings.llm_settings(),
        dataset,
        api_key=settings.llm_api_key,
        require_api_key=settings.require_api_key,
        cache_ttl_days=settings.cache_ttl_days,
        client=client,
    )


def get_conversation_store(db: Session = Depends(get_db)) -> ConversationService:
    return ConversationService(db, max_context_tokens=settings.max_context_tokens)


def get_conversation_service(
    db: Session = Depends(get_db),
    identification: IdentificationService = Depends(get_identification_service),
) -> ConversationService:
    return ConversationService(db, identification, max_context_tokens=settings.max_context_tokens)
