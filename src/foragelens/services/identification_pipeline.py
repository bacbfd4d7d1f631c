"""
Two-stage identification pipeline.

Stage 1 asks the model for candidate species from its own knowledge. The
candidates are resolved against the reference dataset (widened with confusion
and genus safety species) and Stage 2 asks the model to verify them feature by
feature against those entries, streaming the answer back.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from foragelens.config import LLMSettings
from foragelens.models.schemas import (
    LLMMessage,
    LLMRequest,
    ResponseFormat,
    Stage1Candidate,
    Stage1Output,
    TokenUsage,
)
from foragelens.prompts import load_prompt
from foragelens.services import llm_client
from foragelens.services.species_dataset import SpeciesEntry
from foragelens.services.species_lookup import lookup_candidate_species, serialize_for_verification

logger = logging.getLogger(__name__)

STAGE_CANDIDATES = "candidates"
STAGE_LOOKUP = "lookup"
STAGE_VERIFICATION = "verification"

STAGE1_TEMPERATURE = 0.3
STAGE1_MAX_TOKENS = 1024
STAGE2_TEMPERATURE = 0.2
STAGE2_MAX_TOKENS = 2048

EMBEDDED_JSON_PATTERN = re.compile(r"\{[\s\S]*\"candidates\"[\s\S]*\}")
FREE_TEXT_SPECIES_PATTERN = re.compile(r"([A-Z][a-z]+(?:\s+[A-Z]?[a-z]+)*)\s+\(([A-Z][a-z]+\s+[a-z]+)\)")

FALLBACK_REASONING = "Stage 1 JSON output was malformed; species names were extracted from the text instead."
FALLBACK_KEY_REASONS = "Extracted from Stage 1 text (JSON parse failed)"


@dataclass
class PipelineCallbacks:
    on_stage_change: Optional[Callable[[str], None]] = None
    on_chunk: Optional[Callable[[str], None]] = None

    def stage(self, stage: str) -> None:
        logger.info(f"Identification stage: {stage}")
        if self.on_stage_change:
            self.on_stage_change(stage)

    def chunk(self, content: str) -> None:
        if self.on_chunk:
            self.on_chunk(content)


@dataclass
class PipelineResult:
    response: str
    stage1: Stage1Output
    verified_species: List[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


def _validated(candidate: object) -> Optional[Stage1Output]:
    if not isinstance(candidate, dict):
        return None
    try:
        output = Stage1Output.model_validate(candidate)
    except ValidationError:
        return None
    return output if output.candidates else None


def _parse_strict(raw: str) -> Optional[Stage1Output]:
    try:
        return _validated(json.loads(raw))
    except json.JSONDecodeError:
        return None


def _parse_embedded(raw: str) -> Optional[Stage1Output]:
    match = EMBEDDED_JSON_PATTERN.search(raw)
    if not match:
        return None
    return _parse_strict(match.group(0))


def _parse_free_text(raw: str) -> Stage1Output:
    candidates: List[Stage1Candidate] = []
    seen: set[str] = set()
    for common_name, scientific_name in FREE_TEXT_SPECIES_PATTERN.findall(raw):
        if scientific_name in seen:
            continue
        seen.add(scientific_name)
        candidates.append(
            Stage1Candidate(
                name=common_name,
                scientific_name=scientific_name,
                confidence="medium",
                key_reasons=FALLBACK_KEY_REASONS,
            )
        )
    return Stage1Output(
        candidates=candidates,
        reasoning=FALLBACK_REASONING,
        needs_more_info=True,
        follow_up_question=None,
    )


def parse_stage1_output(raw: str) -> Stage1Output:
    """Strict JSON, then embedded JSON, then ``Name (Genus species)`` pairs from free text."""
    for tier in (_parse_strict, _parse_embedded):
        output = tier(raw)
        if output is not None:
            return output
        logger.warning(f"Stage 1 output rejected by {tier.__name__}")
    return _parse_free_text(raw)


def messages_contain_photos(messages: Sequence[LLMMessage]) -> bool:
    return any(message.has_image() for message in messages)


def extract_user_text(messages: Sequence[LLMMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.text()
    return ""


def build_stage1_prompt() -> str:
    return load_prompt("stage1_candidates")


def build_stage2_prompt(species: Sequence[SpeciesEntry]) -> str:
    return load_prompt(
        "stage2_verification",
        species_count=len(species),
        species_json=serialize_for_verification(species),
    )


def build_stage2_user_message(stage1: Stage1Output, original_message: str) -> str:
    return load_prompt(
        "stage2_user",
        original_message=original_message,
        candidates=stage1.candidates,
        reasoning=stage1.reasoning,
    )


def candidate_names(stage1: Stage1Output) -> List[str]:
    common = [c.name for c in stage1.candidates]
    scientific = [c.scientific_name for c in stage1.candidates]
    return common + scientific


async def run_identification_pipeline(
    messages: Sequence[LLMMessage],
    api_key: Optional[str],
    settings: LLMSettings,
    dataset: Sequence[SpeciesEntry],
    callbacks: Optional[PipelineCallbacks] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> PipelineResult:
    callbacks = callbacks or PipelineCallbacks()

    callbacks.stage(STAGE_CANDIDATES)
    stage1_model = settings.vision_model if messages_contain_photos(messages) else settings.model
    stage1_request = LLMRequest(
        model=stage1_model,
        messages=[LLMMessage(role="system", content=build_stage1_prompt()), *messages],
        max_tokens=STAGE1_MAX_TOKENS,
        temperature=STAGE1_TEMPERATURE,
        response_format=ResponseFormat(type="json_object"),
    )
    stage1_response = await llm_client.call_llm(stage1_request, api_key, settings.endpoint, client=client)
    stage1 = parse_stage1_output(stage1_response.content)
    logger.info(f"Stage 1 produced {len(stage1.candidates)} candidates")

    callbacks.stage(STAGE_LOOKUP)
    species = lookup_candidate_species(candidate_names(stage1), dataset)
    verified_species = [entry["scientific_name"] for entry in species]
    logger.info(f"Verifying against {len(verified_species)} dataset species")

    callbacks.stage(STAGE_VERIFICATION)
    stage2_request = LLMRequest(
        model=settings.model,
        messages=[
            LLMMessage(role="system", content=build_stage2_prompt(species)),
            LLMMessage(role="user", content=build_stage2_user_message(stage1, extract_user_text(messages))),
        ],
        max_tokens=STAGE2_MAX_TOKENS,
        temperature=STAGE2_TEMPERATURE,
    )
    stage2_response = await llm_client.call_llm_stream(
        stage2_request, api_key, callbacks.chunk, settings.endpoint, client=client
    )

    return PipelineResult(
        response=stage2_response.content,
        stage1=stage1,
        verified_species=verified_species,
        usage=stage1_response.usage + stage2_response.usage,
    )
