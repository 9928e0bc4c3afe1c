"""
Routed AI endpoint for ClientVerse.

Exposes the two AI flows as RPC-style POST routes so the browser never
holds the model credentials:

    POST /api/flows/autofillData
    POST /api/flows/getProductRecommendations

Request and response bodies use camelCase keys.
"""

from functools import lru_cache

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import Field

from clientverse import __version__
from clientverse.activity import configure_logging
from clientverse.agents.ai_agents import (
    AutofillRequest,
    AutofillResult,
    DataAutofillAgent,
    FlowModel,
    InvalidInputError,
    ProductRecommendationAgent,
    ProductRecommendations,
    UpstreamError,
)
from clientverse.config import get_settings


logger = structlog.get_logger(__name__)

app = FastAPI(title="ClientVerse AI API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:8501", "http://127.0.0.1:8501"],
    allow_credentials=True,
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)


class ProductRecommendationRequest(FlowModel):
    """Input of the recommendation flow."""

    client_data: str = Field(
        ...,
        description="The client record serialized as a JSON string"
    )


@lru_cache
def get_recommendation_agent() -> ProductRecommendationAgent:
    """Agent used by the recommendation route (overridden in tests)."""
    return ProductRecommendationAgent()


@lru_cache
def get_autofill_agent() -> DataAutofillAgent:
    """Agent used by the autofill route (overridden in tests)."""
    return DataAutofillAgent()


@app.post("/api/flows/autofillData", response_model=AutofillResult)
async def autofill_data(
    req: AutofillRequest,
    agent: DataAutofillAgent = Depends(get_autofill_agent),
) -> AutofillResult:
    try:
        return await agent.autofill_data(
            client_name=req.client_name,
            available_data=req.available_data,
            missing_fields=req.missing_fields,
        )
    except UpstreamError as e:
        logger.error("autofill_failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))


@app.post(
    "/api/flows/getProductRecommendations",
    response_model=ProductRecommendations,
)
async def get_product_recommendations(
    req: ProductRecommendationRequest,
    agent: ProductRecommendationAgent = Depends(get_recommendation_agent),
) -> ProductRecommendations:
    try:
        return await agent.get_product_recommendations(req.client_data)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamError as e:
        logger.error("recommendations_failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": __version__}


def main() -> None:
    """Run the API with uvicorn on CLIENTVERSE_API_HOST:CLIENTVERSE_API_PORT."""
    settings = get_settings().app
    configure_logging(settings.log_level)
    uvicorn.run(
        "clientverse.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
