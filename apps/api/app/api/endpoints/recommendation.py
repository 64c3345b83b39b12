from typing import Any

from fastapi import APIRouter, Body, Depends

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal
from app.services import recommendation_proxy
from app.services.errors import UpstreamServiceError

router = APIRouter(tags=["recommendation"])


@router.post("/recommendation")
def recommendation(
    body: Any = Body(default=None),
    _: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return recommendation_proxy.fetch_recommendations(body)
    except UpstreamServiceError as exc:
        raise_http_error(exc)


@router.post("/history-recommendation")
def history_recommendation(
    body: Any = Body(default=None),
    _: AuthPrincipal = Depends(get_current_principal),
):
    try:
        return recommendation_proxy.fetch_history_recommendations(body)
    except UpstreamServiceError as exc:
        raise_http_error(exc)


@router.get("/initialize-backend")
def initialize_backend():
    try:
        return recommendation_proxy.wake_backend()
    except UpstreamServiceError as exc:
        raise_http_error(exc)
