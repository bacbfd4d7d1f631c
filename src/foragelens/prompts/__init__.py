"""Prompt loading and rendering utilities."""

from foragelens.prompts.loader import get_prompt_path, load_prompt, reload_prompts

__all__ = ["load_prompt", "get_prompt_path", "reload_prompts"]
