from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .. import health
from ..state import AppState
from .dependencies import get_app_state

router = APIRouter(prefix="/health", tags=["health"])


def _respond(result: health.HealthResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/live")
def live():
    return _respond(health.liveness())


@router.get("/ready")
async def ready(state: AppState = Depends(get_app_state)):
    return _respond(await health.readiness(state))


@router.get("/status")
async def status(state: AppState = Depends(get_app_state)):
    return _respond(await health.detailed_status(state))
