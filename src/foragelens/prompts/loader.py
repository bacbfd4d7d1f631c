"""Load Markdown prompt templates with YAML front matter and render them with Jinja2."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml
from jinja2 import BaseLoader, Environment, StrictUndefined

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent

_env = Environment(loader=BaseLoader(), undefined=StrictUndefined, autoescape=False)


class PromptTemplate:
    def __init__(self, prompt_id: str, content: str, metadata: Dict[str, Any]):
        self.id = prompt_id
        self.content = content
        self.version = metadata.get("version", "v1")
        self.description = metadata.get("description", "")
        self.requires = list(metadata.get("requires", []))
        self._template = _env.from_string(content)

    def render(self, **kwargs) -> str:
        missing = [name for name in self.requires if name not in kwargs]
        if missing:
            raise KeyError(f"Prompt '{self.id}' requires {missing}")
        return self._template.render(**kwargs)


def get_prompt_path(prompt_id: str) -> Path:
    return PROMPTS_DIR / f"{prompt_id}.md"


def _parse_frontmatter(content: str) -> tuple[Dict[str, Any], str]:
    if not content.startswith("---"):
        return {}, content

    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}, content

    try:
        metadata = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError:
        logger.warning("Failed to parse YAML frontmatter")
        metadata = {}

    return metadata, parts[2].strip()


@lru_cache(maxsize=16)
def get_prompt_template(prompt_id: str) -> PromptTemplate:
    path = get_prompt_path(prompt_id)
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    metadata, body = _parse_frontmatter(path.read_text(encoding="utf-8"))
    return PromptTemplate(prompt_id, body, metadata)


def load_prompt(prompt_id: str, **kwargs) -> str:
    return get_prompt_template(prompt_id).render(**kwargs)


def reload_prompts() -> None:
    get_prompt_template.cache_clear()
