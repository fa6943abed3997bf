from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from atelier.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from atelier.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health() -> dict:
    # Liveness only; no database round trip.
    return success_response(HealthResponse(status="ok").model_dump())
