"""AI Agents package."""

from clientverse.agents.ai_agents import (
    AgentError,
    AutofillResult,
    DataAutofillAgent,
    InvalidInputError,
    ProductRecommendationAgent,
    ProductRecommendations,
    UpstreamError,
    parse_autofill_payload,
)

__all__ = [
    "AgentError",
    "AutofillResult",
    "DataAutofillAgent",
    "InvalidInputError",
    "ProductRecommendationAgent",
    "ProductRecommendations",
    "UpstreamError",
    "parse_autofill_payload",
]
