"""
HTTP surface for recommendations and explanations.

Usage:
    uvicorn matchmaking.api:create_app --factory

Authentication is handled upstream; the requester id arrives as a parameter.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import InvalidRequestError, NotFoundError
from .factory import Services, build_services
from .logging_setup import bind_context, clear_context, configure_logging, get_logger
from .matching_models import CandidateMatch, PaginatedResult, RecommendedUser
from .settings import get_settings

logger = get_logger(__name__)

router = APIRouter(tags=["Recommendations"])


class ExplanationRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    requester_id: str
    recommended_user: RecommendedUser


class ExplanationResponse(BaseModel):
    explanation: str


def _services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services


@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "healthy", "service": "matchmaking"}


@router.get(
    "/recommendations",
    response_model=PaginatedResult[CandidateMatch],
    response_model_by_alias=True,
    summary="Ranked candidates for a user",
)
async def get_recommendations(
    request: Request,
    user_id: str = Query(..., alias="userId", min_length=1),
    page: int = Query(1, ge=1),
    page_size: int = Query(2, alias="pageSize", ge=1),
):
    services = _services(request)
    bind_context(user_id=user_id)
    try:
        return await services.pipeline.get_candidates(user_id, page, page_size)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Error fetching recommendations")
        raise HTTPException(status_code=500, detail="Failed to fetch recommendations")
    finally:
        clear_context()


@router.post(
    "/recommendations/explanation",
    response_model=ExplanationResponse,
    summary="Why a recommended user might be a good connection",
)
async def post_explanation(request: Request, body: ExplanationRequest) -> ExplanationResponse:
    services = _services(request)
    explanation = await services.explainer.explain(body.recommended_user, body.requester_id)
    return ExplanationResponse(explanation=explanation)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built services (tests pass fakes). When omitted they are built
            from settings on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        settings = get_settings()
        configure_logging(
            json_logs=settings.is_production,
            log_level="DEBUG" if settings.debug else "INFO",
        )
        if getattr(app.state, "services", None) is None:
            app.state.services = await build_services(settings)
        logger.info("Matchmaking API started", environment=settings.environment)
        yield
        logger.info("Matchmaking API stopped")

    app = FastAPI(title="Matchmaking API", lifespan=lifespan)
    app.state.services = services
    app.include_router(router)
    return app
