import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foragelens.api.routers import chat_proxy, sessions, usage
from foragelens.config import settings
from foragelens.models import init_db
from foragelens.services.species_dataset import load_species_dataset

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    init_db()
    dataset_path = Path(settings.species_dataset_path)
    if dataset_path.exists():
        app.state.species_dataset = load_species_dataset(dataset_path)
    else:
        logger.warning(f"Species dataset not found at {dataset_path}; identification is disabled")
        app.state.species_dataset = None
    yield


app = FastAPI(
    title=settings.app_name,
    description="Dataset-grounded mushroom identification",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router, prefix="/api/v1/sessions", tags=["sessions"])
app.include_router(usage.router, prefix="/api/v1", tags=["usage"])
app.include_router(chat_proxy.router, prefix="/api", tags=["proxy"])


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
