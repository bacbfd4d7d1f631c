from typing import Optional

# USD per `unit` tokens. Completion tokens are billed higher than prompt tokens.
DEFAULT_PRICING = {"input": 3.0, "output": 15.0, "unit": 1_000_000}

PRICING = {
    "glm-4.7-flash": DEFAULT_PRICING,
    "glm-4.6v-flash": DEFAULT_PRICING,
    "glm-4.6": {"input": 0.6, "output": 2.2, "unit": 1_000_000},
    "glm-4.5v": {"input": 0.6, "output": 1.8, "unit": 1_000_000},
}


def _model_pricing(model: Optional[str]) -> dict:
    if not model:
        return DEFAULT_PRICING
    return PRICING.get(model.lower(), DEFAULT_PRICING)


def estimate_cost(prompt_tokens: int, completion_tokens: int, model: Optional[str] = None) -> float:
    pricing = _model_pricing(model)
    unit = pricing["unit"]
    cost_in = (max(prompt_tokens, 0) / unit) * pricing["input"]
    cost_out = (max(completion_tokens, 0) / unit) * pricing["output"]
    return round(cost_in + cost_out, 6)
