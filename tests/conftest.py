"""Shared fixtures: in-memory database, species dataset, fake model endpoint and test app."""

import json
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SPECIES_DATASET_PATH", "tests/data/missing-species.json")

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from foragelens.api.dependencies import get_llm_client, get_upstream_transport
from foragelens.api.routers import chat_proxy, sessions, usage
from foragelens.config import LLMSettings, settings
from foragelens.models import Base, get_db
from foragelens.services.species_dataset import load_species_dataset

SPECIES_RECORDS = [
    {
        "name": "Field Mushroom",
        "scientific_name": "Agaricus campestris",
        "edibility": "edible",
        "cap": "White, smooth to slightly scaly, 3-10cm",
        "under_cap_description": "Free gills, bright pink when young, chocolate brown with age",
        "stem": "White, short, with a thin fragile ring",
        "flesh": "White, may redden slightly when cut",
        "habitat": "Grassland and pasture",
        "possible_confusion": (
            "Yellow Stainer (Agaricus xanthodermus) bruises chrome yellow at the stem base; "
            "young Destroying Angel (Amanita virosa) has white gills and a volva."
        ),
        "spore_print": "Dark brown",
        "taste": "Mild",
        "smell": "Pleasant, mushroomy",
        "edibility_detail": "Good edible",
        "diagnostic_features": "Pink gills, no yellow staining",
        "safety_checks": "Scratch the stem base, check for a volva",
        "source_url": "https://example.org/field-mushroom",
        "synonyms": ["Psalliota campestris"],
        "common_names": ["Meadow Mushroom"],
        "frequency": "common",
        "other_facts": None,
    },
    {
        "name": "Yellow Stainer",
        "scientific_name": "Agaricus xanthodermus",
        "edibility": "poisonous",
        "cap": "White, bruising chrome yellow",
        "stem": "White, yellow at the base when cut",
        "habitat": "Woodland edges, parks and gardens",
        "possible_confusion": "Field Mushroom (Agaricus campestris)",
        "smell": "Ink or carbolic",
        "source_url": "https://example.org/yellow-stainer",
    },
    {
        "name": "Deathcap",
        "scientific_name": "Amanita phalloides",
        "edibility": "deadly",
        "cap": "Olive to yellow-green, smooth",
        "under_cap_description": "White, free gills",
        "stem": "White with a ring and a sac-like volva",
        "habitat": "Broadleaf woodland, usually under oak",
        "possible_confusion": "False Deathcap (Amanita citrina)",
    },
    {
        "name": "Destroying Angel",
        "scientific_name": "Amanita virosa",
        "edibility": "deadly",
        "cap": "Pure white, conical then expanded",
        "stem": "White, shaggy, with a volva",
        "possible_confusion": None,
    },
    {
        "name": "Panthercap",
        "scientific_name": "Amanita pantherina",
        "edibility": "deadly",
        "cap": "Brown with white warts",
        "possible_confusion": "The Blusher (Amanita rubescens)",
    },
    {
        "name": "The Blusher",
        "scientific_name": "Amanita rubescens",
        "edibility": "edible",
        "cap": "Pinkish brown with grey warts",
        "flesh": "Reddens when cut",
        "possible_confusion": "Panthercap (Amanita pantherina)",
    },
    {
        "name": "Fly Agaric",
        "scientific_name": "Amanita muscaria",
        "edibility": "poisonous",
        "cap": "Red with white warts",
        "possible_confusion": "The Blusher (Amanita rubescens)",
    },
    {
        "name": "Fool's Funnel",
        "scientific_name": "Clitocybe rivulosa",
        "edibility": "deadly",
        "cap": "Small, white, funnel-shaped",
        "habitat": "Grassland, often in rings",
    },
    {
        "name": "Funeral Bell",
        "scientific_name": "Galerina marginata",
        "edibility": "deadly",
        "habitat": "On rotting wood",
    },
    {
        "name": "Devil's Bolete",
        "scientific_name": "Rubroboletus satanas / Boletus satanas",
        "edibility": "poisonous",
        "under_cap_description": "Red pores bruising blue",
    },
]

STAGE1_OUTPUT = {
    "candidates": [
        {
            "name": "Field Mushroom",
            "scientific_name": "Agaricus campestris",
            "confidence": "high",
            "key_reasons": ["pink gills", "grows in pasture"],
        }
    ],
    "reasoning": "Pink free gills and a grassland habitat point to Agaricus.",
    "needs_more_info": False,
    "follow_up_question": None,
}

STAGE1_USAGE = {"prompt_tokens": 1000, "completion_tokens": 200, "total_tokens": 1200}
STAGE2_USAGE = {"prompt_tokens": 3000, "completion_tokens": 500, "total_tokens": 3500}
STAGE2_CHUNKS = ["## Verdict\n", "Likely **Field Mushroom** ", "(Agaricus campestris)."]


def sse_body(chunks: List[str], usage: Optional[dict] = None) -> bytes:
    frames = [f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}\n\n" for c in chunks]
    if usage is not None:
        frames.append(f"data: {json.dumps({'choices': [], 'usage': usage})}\n\n")
    frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def completion_body(content: str, usage: Optional[dict] = None) -> dict:
    return {
        "id": "chatcmpl-test",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": usage,
    }


class FakeLLMEndpoint:
    """MockTransport handler answering Stage 1 with JSON and Stage 2 with an SSE stream."""

    def __init__(
        self,
        stage1_content: Optional[str] = None,
        stage2_chunks: Optional[List[str]] = None,
        stage1_usage: Optional[dict] = None,
        stage2_usage: Optional[dict] = None,
    ):
        self.stage1_content = stage1_content if stage1_content is not None else json.dumps(STAGE1_OUTPUT)
        self.stage2_chunks = stage2_chunks if stage2_chunks is not None else list(STAGE2_CHUNKS)
        self.stage1_usage = stage1_usage or STAGE1_USAGE
        self.stage2_usage = stage2_usage or STAGE2_USAGE
        self.payloads: List[dict] = []
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(request)
        self.payloads.append(payload)
        if payload.get("stream"):
            return httpx.Response(
                200,
                content=sse_body(self.stage2_chunks, self.stage2_usage),
                headers={"Content-Type": "text/event-stream"},
            )
        return httpx.Response(200, json=completion_body(self.stage1_content, self.stage1_usage))

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture(scope="function")
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    yield session
    session.close()


@pytest.fixture
def species_file(tmp_path):
    path = tmp_path / "species.json"
    path.write_text(json.dumps(SPECIES_RECORDS), encoding="utf-8")
    return path


@pytest.fixture
def species_dataset(species_file):
    return load_species_dataset(species_file)


@pytest.fixture
def llm_settings() -> LLMSettings:
    return LLMSettings(
        endpoint="http://llm.test/api/chat",
        model="glm-4.7-flash",
        vision_model="glm-4.6v-flash",
        budget_limit_usd=5.0,
    )


@pytest.fixture
def fake_llm() -> FakeLLMEndpoint:
    return FakeLLMEndpoint()


@pytest.fixture
def llm_http_client(fake_llm):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_llm))


@pytest.fixture
def upstream_handler():
    """Replaceable handler for the chat proxy's upstream; tests assign ``.handler``."""

    class Upstream:
        def __init__(self):
            self.requests: List[httpx.Request] = []
            self.handler = lambda request: httpx.Response(200, json=completion_body("proxied"))

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.handler(request)

    return Upstream()


@pytest.fixture(scope="function")
def test_app(species_dataset):
    @asynccontextmanager
    async def test_lifespan(app: FastAPI) -> AsyncGenerator:
        app.state.species_dataset = species_dataset
        yield

    app = FastAPI(
        title="ForageLens Test",
        description="Dataset-grounded mushroom identification",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.include_router(sessions.router, prefix="/api/v1/sessions", tags=["sessions"])
    app.include_router(usage.router, prefix="/api/v1", tags=["usage"])
    app.include_router(chat_proxy.router, prefix="/api", tags=["proxy"])

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


@pytest.fixture(scope="function")
def client(db_session: Session, test_app: FastAPI, llm_http_client, upstream_handler, monkeypatch):
    monkeypatch.setattr(settings, "llm_api_key", "test-key")
    monkeypatch.setattr(settings, "llm_endpoint", "http://llm.test/api/chat")
    monkeypatch.setattr(settings, "budget_limit_usd", 5.0)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_llm_client] = lambda: llm_http_client
    test_app.dependency_overrides[get_upstream_transport] = lambda: httpx.MockTransport(upstream_handler)
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.clear()
