from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ..metrics import CONTENT_TYPE, MetricsRegistry
from .dependencies import get_metrics

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics(registry: MetricsRegistry = Depends(get_metrics)):
    return Response(content=registry.snapshot(), media_type=CONTENT_TYPE)
