from fastapi import Request

from ..metrics import MetricsRegistry
from ..state import AppState


def get_app_state(request: Request) -> AppState:
    return request.app.state.ripple


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics
