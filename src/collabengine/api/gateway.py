"""
API Gateway -- FastAPI application factory.

Creates the FastAPI app with all routes, middleware, and dependencies.
This is the entrypoint for uvicorn:

    uvicorn collabengine.api.gateway:create_app --factory --host 0.0.0.0 --port 8000

Or through the CLI:

    collabengine serve --port 8000

Security:
  - CORS restricted to configured origins (default: localhost only)
  - Rate limiting on every route that can spend money
  - All external input validated at boundary (pydantic + security.validators)
"""

import logging
import time
from collections import OrderedDict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..billing.ledger import estimate_cost
from ..config import EngineConfig
from ..events.publisher import EventPublisher, QueueEventPublisher
from ..llm import ModelClient, create_model_client
from ..orchestration import CollaborationOrchestrator
from ..service import CollaborationService
from .middleware.rate_limit import SlidingWindowLimiter
from .routes import collaborations, health

logger = logging.getLogger(__name__)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are a 400, with pydantic's error list as detail."""
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": errors})


def create_app(
    client: ModelClient | None = None,
    config: EngineConfig | None = None,
    publisher: EventPublisher | None = None,
    service: CollaborationService | None = None,
) -> FastAPI:
    """
    Application factory -- creates and configures the FastAPI app.

    Args:
        client: Model client (built from provider keys in the environment if None).
        config: Engine configuration (EngineConfig.from_env() if None).
        publisher: Event publisher; must support subscribe() for the events route.
        service: Shared limiter + session registry (created if None).
    """
    config = config or EngineConfig.from_env()
    service = service or CollaborationService(config)
    events = publisher or QueueEventPublisher()

    application = FastAPI(
        title="collabengine API",
        description="Multi-agent LLM collaboration engine",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
    application.add_exception_handler(RequestValidationError, _validation_error)

    if client is None:
        try:
            client = create_model_client()
        except Exception as e:
            logger.warning(f"[Gateway] Model client init failed (non-fatal): {e}")
            client = None

    application.state.config = config
    application.state.service = service
    application.state.events = events
    application.state.client = client
    application.state.estimator = estimate_cost
    application.state.orchestrator = (
        CollaborationOrchestrator(client, service=service, publisher=events, config=config)
        if client is not None
        else None
    )
    application.state.results = OrderedDict()
    application.state.rate_limiter = SlidingWindowLimiter(config.rate_limit_per_minute)
    application.state.start_time = time.time()

    application.include_router(health.router, tags=["Health"])
    application.include_router(
        collaborations.router, prefix="/api/v1", tags=["Collaborations"]
    )

    logger.info("[Gateway] API gateway initialized")
    return application
