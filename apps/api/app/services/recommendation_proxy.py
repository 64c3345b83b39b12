from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.services.errors import UpstreamServiceError


_LOGGER = logging.getLogger(__name__)


def _endpoint(path: str) -> str:
    base_url = str(settings.recommendation_base_url or "").strip()
    if not base_url:
        raise UpstreamServiceError("RECOMMENDATION_BASE_URL is empty")
    normalized = (path or "").strip()
    if normalized and not normalized.startswith("/"):
        normalized = "/" + normalized
    return base_url.rstrip("/") + (normalized or "/")


def _request_json(method: str, *, path: str, json_body: Any = None) -> Any:
    url = _endpoint(path)
    timeout = httpx.Timeout(float(settings.recommendation_timeout_seconds))
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.request(method=method, url=url, json=json_body)
    except httpx.HTTPError as exc:
        _LOGGER.warning("recommendation backend unreachable: %s %s (%s)", method, url, exc)
        raise UpstreamServiceError("recommendation backend unreachable") from exc
    if int(resp.status_code) >= 400:
        _LOGGER.warning("recommendation backend returned %s for %s %s", resp.status_code, method, url)
        raise UpstreamServiceError(f"recommendation backend failed: {resp.status_code}")
    try:
        return resp.json()
    except ValueError as exc:
        raise UpstreamServiceError("recommendation backend returned invalid JSON") from exc


def fetch_recommendations(body: Any) -> Any:
    return _request_json("POST", path="/recommendation", json_body=body)


def fetch_history_recommendations(body: Any) -> Any:
    return _request_json("POST", path="/history-recommendation", json_body=body)


def wake_backend() -> dict[str, Any]:
    data = _request_json("GET", path="/")
    _LOGGER.info("recommendation backend responded to wake-up call")
    return {"message": "Recommendation backend is awake", "data": data}
