"""
AI Agents for ClientVerse

Two single-shot helpers around a hosted Gemini model:

1. PRODUCT RECOMMENDATION AGENT:
   - CAN: Suggest insurance and investment products for one client
   - CANNOT: See anything but the client data it is handed
   - MUST: Answer in the {insuranceRecommendations, investmentRecommendations}
     shape or fail with UpstreamError

2. DATA AUTOFILL AGENT:
   - CAN: Propose values for fields the advisor left blank
   - CANNOT: Write anything - the advisor applies proposals in the form
   - Returns the model's JSON text; parsing is the caller's job

BOUNDARIES:
- One request, one response. No conversation state between calls.
- No retries. A failed call surfaces to the caller immediately.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from clientverse.config import GeminiSettings, get_settings


class AgentError(Exception):
    """Base exception for AI agent errors."""
    pass


class InvalidInputError(AgentError):
    """The agent was handed input it cannot use."""
    pass


class UpstreamError(AgentError):
    """The model call failed or its answer has the wrong shape."""
    pass


class FlowModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductRecommendations(FlowModel):
    """Cross-sell suggestions for one client, in the order the model gave them."""

    insurance_recommendations: list[str] = Field(
        default_factory=list,
        description="Recommended insurance products"
    )
    investment_recommendations: list[str] = Field(
        default_factory=list,
        description="Recommended investment products"
    )

    @model_validator(mode='before')
    @classmethod
    def require_a_list(cls, data: Any) -> Any:
        if isinstance(data, dict):
            keys = {
                "insuranceRecommendations", "insurance_recommendations",
                "investmentRecommendations", "investment_recommendations",
            }
            if not keys & data.keys():
                raise ValueError("Response has neither recommendation list")
        return data

    @field_validator('insurance_recommendations', 'investment_recommendations', mode='before')
    @classmethod
    def coerce_items(cls, v: Any) -> Any:
        """Models sometimes answer with {product, reason} objects instead of strings."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            items = []
            for item in v:
                if isinstance(item, dict):
                    item = " - ".join(str(part) for part in item.values() if part)
                items.append(item)
            return items
        return v


class AutofillRequest(FlowModel):
    """Input of the autofill flow."""

    client_name: str = Field(..., description="The name of the client")
    available_data: str = Field(
        default="",
        description="Known client information to use as context"
    )
    missing_fields: str = Field(
        ...,
        description="Comma-separated list of the fields to fill"
    )

    @property
    def requested_fields(self) -> list[str]:
        return [name.strip() for name in self.missing_fields.split(",") if name.strip()]


class AutofillResult(FlowModel):
    """
    Output of the autofill flow.

    autofilled_data is JSON TEXT, not a dict. See parse_autofill_payload().
    """

    autofilled_data: str = Field(
        ...,
        description="A JSON object with proposed values for the requested fields"
    )


def _extract_json_object(text: str) -> str:
    """Cut the outermost {...} out of a model answer (drops code fences, chatter)."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        return text[start:end]
    return text


def parse_autofill_payload(text: str) -> dict[str, Any]:
    """
    Parse the text returned by the autofill flow.

    Raises:
        json.JSONDecodeError: If the text is not JSON
        ValueError: If the JSON is not an object or is nested too deeply
    """
    try:
        data = json.loads(text)
    except RecursionError as e:
        raise ValueError("Autofill payload is nested too deeply") from e
    if not isinstance(data, dict):
        raise ValueError("Autofill payload is not a JSON object")
    return data


class GeminiAgent:
    """
    Shared plumbing: model configuration and a single guarded call.
    """

    max_output_tokens: Optional[int] = None

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: Object exposing generate_content_async(prompt). Built from
                   GEMINI_* settings when omitted.
        """
        if model is None:
            model = self._configure_genai(get_settings().gemini)
        self._model = model

    def _configure_genai(self, settings: GeminiSettings):
        """Configure Google Generative AI."""
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": self.max_output_tokens or settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    async def _generate(self, prompt: str) -> str:
        """Run one model call and return its text."""
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text
        except Exception as e:
            raise UpstreamError(f"Model call failed: {e}") from e
        if not text or not text.strip():
            raise UpstreamError("Model returned an empty response")
        return text.strip()


class ProductRecommendationAgent(GeminiAgent):
    """
    Suggests cross-sell products from a client's full record.

    RESPONSIBILITIES:
    - Check the client data is a JSON object before spending a model call
    - Coerce the answer into ProductRecommendations

    BOUNDARIES:
    - No ranking guarantee: order is whatever the model produced
    """

    async def get_product_recommendations(
        self,
        client_data: str,
    ) -> ProductRecommendations:
        """
        Suggest insurance and investment products for a client.

        Args:
            client_data: The client record serialized as JSON

        Raises:
            InvalidInputError: If client_data is not a JSON object
            UpstreamError: If the model call fails or the answer can't be coerced
        """
        try:
            parsed = json.loads(client_data)
        except (TypeError, ValueError, RecursionError) as e:
            raise InvalidInputError(f"Invalid client data format: {e}") from e
        if not isinstance(parsed, dict):
            raise InvalidInputError("Invalid client data format: expected a JSON object")

        prompt = f"""You are an expert financial advisor. Analyze the client data provided and suggest relevant insurance and investment products to enhance cross-selling opportunities.

Client Data: {json.dumps(parsed, ensure_ascii=False)}

Provide clear and concise recommendations, explaining why each product is suitable for the client.

Output the insurance and investment recommendations in the specified JSON format: {{"insuranceRecommendations": ["...", "..."], "investmentRecommendations": ["...", "..."]}}"""

        text = await self._generate(prompt)

        try:
            data = json.loads(_extract_json_object(text))
            return ProductRecommendations.model_validate(data)
        except (ValueError, RecursionError) as e:
            raise UpstreamError(f"Unexpected recommendation response: {e}") from e


class DataAutofillAgent(GeminiAgent):
    """
    Proposes values for a client's missing fields.

    RESPONSIBILITIES:
    - Ask only for the requested fields
    - Drop any extra keys the model adds, when its answer is a JSON object

    BOUNDARIES:
    - Does NOT guarantee the returned text is valid JSON. A malformed
      answer is handed back unchanged and fails in the caller's parse.
    """

    max_output_tokens = 1024

    async def autofill_data(
        self,
        client_name: str,
        available_data: str,
        missing_fields: str,
    ) -> AutofillResult:
        """
        Propose values for the missing fields.

        Args:
            client_name: The client's name
            available_data: Known information to use as context
            missing_fields: Comma-separated field names to fill

        Raises:
            UpstreamError: If the model call fails
        """
        request = AutofillRequest(
            client_name=client_name,
            available_data=available_data,
            missing_fields=missing_fields,
        )

        prompt = f"""You are an AI assistant that helps autofill missing client information based on available data.

The client's name is {request.client_name}.

You are given the following available data about the client:
{request.available_data}

The following fields need to be autofilled:
{request.missing_fields}

Return the autofilled data as a JSON object. If you cannot fill a particular field, leave it blank in the JSON. Do not add any conversational text before or after the JSON object.
Ensure that the returned JSON is valid and can be parsed without errors. Include only the requested fields in the JSON. Use your best judgement to provide accurate and complete information.

Here is the JSON:
"""

        text = await self._generate(prompt)
        return AutofillResult(
            autofilled_data=self._restrict_to_requested(text, request.requested_fields)
        )

    def _restrict_to_requested(self, text: str, requested: list[str]) -> str:
        """
        Keep only requested keys when the answer is a JSON object.

        Keys are matched case-insensitively and renamed to the requested
        spelling. Anything that is not a JSON object is returned as-is.
        """
        try:
            data = json.loads(_extract_json_object(text))
        except (ValueError, RecursionError):
            return text
        if not isinstance(data, dict):
            return text

        by_lower = {name.lower(): name for name in requested}
        kept = {}
        for key, value in data.items():
            name = by_lower.get(str(key).strip().lower())
            if name is not None:
                kept[name] = "" if value is None else value
        return json.dumps(kept, ensure_ascii=False)
