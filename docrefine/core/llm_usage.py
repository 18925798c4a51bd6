"""Token usage and cost accounting for provider completions."""

import logging

from docrefine.core.schemas import UsageInfo

logger = logging.getLogger(__name__)

# Pricing per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # Google
    "gemini-2.5-pro": (1.25, 10.0),
    "gemini-2.5-flash": (0.30, 2.50),
    "gemini-2.5-flash-lite": (0.10, 0.40),
    "gemini-2.0-flash": (0.10, 0.40),
}


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimate cost in USD based on model pricing."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        # Try prefix match for model variants
        for key, val in MODEL_PRICING.items():
            if model.startswith(key):
                pricing = val
                break
    if not pricing:
        logger.warning(f"No pricing found for model '{model}', using $0")
        return 0.0

    input_rate, output_rate = pricing
    cost = (tokens_input * input_rate / 1_000_000) + (tokens_output * output_rate / 1_000_000)
    return round(cost, 6)


def build_usage(
    prompt_tokens: int | None,
    completion_tokens: int | None,
    total_tokens: int | None = None,
) -> UsageInfo:
    """Normalize provider token counts; missing counts become 0."""
    prompt = prompt_tokens or 0
    completion = completion_tokens or 0
    return UsageInfo(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total_tokens if total_tokens is not None else prompt + completion,
    )


def merge_usage(usage: UsageInfo | None, cost: float | None) -> UsageInfo | None:
    """
    Fold the advisory cost into provider-reported usage.

    A missing or failed cost lookup yields ``cost == 0``; it never drops the
    token counts.
    """
    if usage is None and cost is None:
        return None
    base = usage or UsageInfo()
    return base.model_copy(update={"cost": float(cost) if cost else 0.0})


def log_llm_usage(stage: str, provider: str, model: str | None, usage: UsageInfo | None) -> None:
    """Log a completion's usage. Fire-and-forget."""
    if usage is None:
        logger.debug(f"LLM usage unavailable: {stage} provider={provider} model={model or '-'}")
        return
    logger.debug(
        f"LLM usage: {stage} provider={provider} model={model or '-'} "
        f"tokens={usage.prompt_tokens}+{usage.completion_tokens} "
        f"cost=${usage.cost:.4f}"
    )


def format_price_per_million(price: str) -> str:
    """Render a per-1M-token price string for display."""
    try:
        value = float(price)
    except (TypeError, ValueError):
        return "Free"
    if value == 0 or value != value:
        return "Free"
    return f"${value:.4f} / 1M tokens"
