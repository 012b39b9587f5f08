"""
Collaboration API -- run multi-agent sessions and follow them live.

  POST   /api/v1/collaborations                     -- Run a session, return the result
  POST   /api/v1/collaborations/estimate            -- Pre-call cost estimate
  GET    /api/v1/collaborations/{session_id}        -- Cached result
  DELETE /api/v1/collaborations/{session_id}        -- Cancel a running session
  GET    /api/v1/collaborations/{session_id}/events -- Server-sent event stream

Error mapping:
  400 invalid request, 402 cost limit exceeded (body carries the partial
  result), 429 rate limited, 502 every agent failed, 503 no model client,
  504 session deadline under strict policy.
"""

import json
import logging
from collections import OrderedDict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...errors import (
    AgentFailureError,
    CollaborationError,
    CostLimitExceededError,
    GlobalDeadlineError,
    create_error_response,
)
from ...models import CollaborationResult, Session, channel_for
from ...orchestration import CollaborationOrchestrator
from ...security import ValidationError, validate_identifier
from ..middleware.rate_limit import check_rate_limit
from ..models.requests import CollaborationRequest, EstimateRequest
from ..models.responses import CollaborationResultResponse, ErrorBody, EstimateResponse

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_CACHED_RESULTS = 1000

ERROR_STATUS = (
    (CostLimitExceededError, 402),
    (GlobalDeadlineError, 504),
    (AgentFailureError, 502),
)


def _cache_result(request: Request, response: CollaborationResultResponse) -> None:
    """Store result with LRU eviction."""
    cache: OrderedDict[str, CollaborationResultResponse] = request.app.state.results
    cache[response.session_id] = response
    cache.move_to_end(response.session_id)
    while len(cache) > MAX_CACHED_RESULTS:
        cache.popitem(last=False)


def _orchestrator(request: Request) -> CollaborationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="No model client configured. Set provider API keys and restart.",
        )
    return orchestrator


def _error_response(request: Request, error: CollaborationError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS if isinstance(error, error_type)), 500
    )
    partial = error.partial if isinstance(error.partial, CollaborationResult) else None
    body = ErrorBody.from_error(create_error_response(error), partial)
    if body.partial is not None:
        _cache_result(request, body.partial)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


def _sse_event(event_type: str, data: dict) -> str:
    """Format a Server-Sent Event."""
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n"


# =============================================================================
# ROUTES
# =============================================================================


@router.post(
    "/collaborations",
    response_model=CollaborationResultResponse,
    responses={402: {"model": ErrorBody}, 502: {"model": ErrorBody}, 504: {"model": ErrorBody}},
)
async def run_collaboration(
    collab_request: CollaborationRequest,
    request: Request,
    _rate: None = Depends(check_rate_limit),
):
    """
    Run a collaboration session to completion.

    Pass a sessionId and open /collaborations/{sessionId}/events first to
    follow phases and agent status while the session runs.
    """
    orchestrator = _orchestrator(request)
    try:
        session: Session = collab_request.to_session(request.app.state.config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if request.app.state.service.is_running(session.id):
        raise HTTPException(status_code=409, detail=f"Session '{session.id}' is already running")

    try:
        result = await orchestrator.run(session)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CollaborationError as e:
        logger.warning(f"[CollabAPI] Session {session.id} ended with {type(e).__name__}: {e}")
        return _error_response(request, e)
    except Exception as e:
        logger.error(f"[CollabAPI] Session {session.id} failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Internal error processing session {session.id}. Check server logs.",
        )

    response = CollaborationResultResponse.from_result(result)
    _cache_result(request, response)
    return response


@router.post("/collaborations/estimate", response_model=EstimateResponse)
async def estimate_collaboration(
    estimate_request: EstimateRequest,
    request: Request,
    _rate: None = Depends(check_rate_limit),
) -> EstimateResponse:
    """Estimate what a session would cost. No model is called."""
    config = request.app.state.config
    try:
        session = Session(
            prompt=estimate_request.prompt,
            agents=estimate_request.agents,
            mode=estimate_request.mode,
            models=estimate_request.models,
        )
        for agent in session.agents:
            validate_identifier(agent, "agents entry")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    estimator = request.app.state.estimator
    estimate = estimator(session.agents, len(session.prompt), session.mode, session.models)
    cap = estimate_request.cost_cap_usd or config.cost_cap_usd
    return EstimateResponse(
        estimated_cost_usd=estimate,
        cost_cap_usd=cap,
        within_budget=estimate <= cap,
        agents=session.agents,
        mode=session.mode.value,
    )


@router.get("/collaborations/{session_id}", response_model=CollaborationResultResponse)
async def get_collaboration(session_id: str, request: Request):
    """Get a previously completed session result."""
    cache = request.app.state.results
    if session_id in cache:
        cache.move_to_end(session_id)
        return cache[session_id]
    if request.app.state.service.is_running(session_id):
        return JSONResponse(
            status_code=202, content={"sessionId": session_id, "status": "running"}
        )
    raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")


@router.delete("/collaborations/{session_id}")
async def cancel_collaboration(session_id: str, request: Request) -> dict:
    """Cancel a running session; it returns its best partial result."""
    if not request.app.state.service.cancel(session_id, "cancelled via API"):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' is not running")
    return {"sessionId": session_id, "status": "cancelling"}


@router.get("/collaborations/{session_id}/events")
async def stream_events(session_id: str, request: Request) -> StreamingResponse:
    """
    Server-sent events for one session: phase_start, agent_status,
    agent_thinking, agent_thought, agent_retry, collaboration_result and
    finally collaboration_complete, after which the stream ends.
    """
    try:
        validate_identifier(session_id, "session_id")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    events = request.app.state.events
    channel_id = channel_for(session_id)

    async def event_generator():
        async for event in events.subscribe(channel_id):
            yield _sse_event(event.get("type", "message"), event)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
