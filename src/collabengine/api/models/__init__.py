"""Pydantic models for API request/response contracts."""
from .requests import CamelModel, CollaborationRequest, EstimateRequest
from .responses import (
    CollaborationResultResponse,
    CritiqueResponse,
    DraftResponse,
    ErrorBody,
    EstimateResponse,
    HealthResponse,
    IterationResponse,
    MetricsResponse,
    VoteResponse,
)
