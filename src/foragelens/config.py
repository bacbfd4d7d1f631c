from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseModel):
    """Model-endpoint settings handed to the identification core."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    model: str
    vision_model: str
    max_tokens: int = 2048
    budget_limit_usd: float = 5.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "ForageLens"
    debug: bool = False

    database_url: str = "sqlite:///./foragelens.db"

    llm_endpoint: str = "http://localhost:8000/api/chat"
    upstream_endpoint: str = "https://api.z.ai/api/paas/v4/chat/completions"
    llm_api_key: Optional[str] = None
    require_api_key: bool = True

    llm_model: str = "glm-4.7-flash"
    llm_vision_model: str = "glm-4.6v-flash"
    llm_max_tokens: int = 2048

    budget_limit_usd: float = 5.0
    cache_ttl_days: int = 7
    max_context_tokens: int = 190_000

    species_dataset_path: str = "data/species.json"

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    def llm_settings(self) -> LLMSettings:
        return LLMSettings(
            endpoint=self.llm_endpoint,
            model=self.llm_model,
            vision_model=self.llm_vision_model,
            max_tokens=self.llm_max_tokens,
            budget_limit_usd=self.budget_limit_usd,
        )


settings = Settings()
