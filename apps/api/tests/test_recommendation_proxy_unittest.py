import unittest
from unittest.mock import MagicMock, patch

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.errors import install_exception_handlers
from app.api.router import api_router
from app.core.config import settings
from app.services import recommendation_proxy as proxy
from app.services.errors import UpstreamServiceError


def _client_returning(response: httpx.Response | Exception) -> MagicMock:
    client = MagicMock()
    if isinstance(response, Exception):
        client.request.side_effect = response
    else:
        client.request.return_value = response
    factory = MagicMock()
    factory.return_value.__enter__.return_value = client
    return factory


class RecommendationProxyServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._snapshot = {
            "recommendation_base_url": settings.recommendation_base_url,
            "recommendation_timeout_seconds": settings.recommendation_timeout_seconds,
        }
        settings.recommendation_base_url = "http://recs.local/"
        settings.recommendation_timeout_seconds = 5.0

    def tearDown(self) -> None:
        for key, value in self._snapshot.items():
            setattr(settings, key, value)

    def test_forwards_body_and_returns_upstream_json(self) -> None:
        factory = _client_returning(httpx.Response(200, json={"items": [{"title": "Dune"}]}))
        with patch("app.services.recommendation_proxy.httpx.Client", factory):
            result = proxy.fetch_recommendations({"genres": ["sci-fi"]})

        self.assertEqual(result, {"items": [{"title": "Dune"}]})
        call = factory.return_value.__enter__.return_value.request.call_args
        self.assertEqual(call.kwargs["url"], "http://recs.local/recommendation")
        self.assertEqual(call.kwargs["json"], {"genres": ["sci-fi"]})
        self.assertEqual(factory.call_args.kwargs["timeout"], httpx.Timeout(5.0))

    def test_non_2xx_raises_upstream_error(self) -> None:
        factory = _client_returning(httpx.Response(503, text="busy"))
        with patch("app.services.recommendation_proxy.httpx.Client", factory):
            with self.assertRaises(UpstreamServiceError):
                proxy.fetch_history_recommendations({"history": []})

    def test_transport_error_raises_upstream_error(self) -> None:
        factory = _client_returning(httpx.ConnectTimeout("timed out"))
        with patch("app.services.recommendation_proxy.httpx.Client", factory):
            with self.assertRaises(UpstreamServiceError):
                proxy.fetch_recommendations({})

    def test_missing_base_url_raises_upstream_error(self) -> None:
        settings.recommendation_base_url = ""
        with self.assertRaises(UpstreamServiceError):
            proxy.fetch_recommendations({})


class RecommendationEndpointTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._snapshot = {
            "auth_enabled": settings.auth_enabled,
            "auth_tokens": settings.auth_tokens,
            "auth_token": settings.auth_token,
            "auth_user": settings.auth_user,
        }
        settings.auth_enabled = True
        settings.auth_tokens = "reader:reader-token"
        settings.auth_token = ""
        settings.auth_user = ""

        app = FastAPI()
        install_exception_handlers(app)
        app.include_router(api_router, prefix=settings.api_prefix)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        for key, value in self._snapshot.items():
            setattr(settings, key, value)

    @patch("app.services.recommendation_proxy._request_json")
    def test_recommendation_returns_upstream_payload_verbatim(self, mock_request_json) -> None:
        mock_request_json.return_value = [{"title": "Frieren", "score": 9.1}]
        resp = self.client.post(
            "/api/history-recommendation",
            json={"history": ["Mushishi"]},
            headers={"Authorization": "Bearer reader-token"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), [{"title": "Frieren", "score": 9.1}])
        mock_request_json.assert_called_once_with(
            "POST",
            path="/history-recommendation",
            json_body={"history": ["Mushishi"]},
        )

    @patch("app.services.recommendation_proxy._request_json")
    def test_upstream_failure_maps_to_500(self, mock_request_json) -> None:
        mock_request_json.side_effect = UpstreamServiceError("recommendation backend failed: 502")
        resp = self.client.post(
            "/api/recommendation",
            json={"genres": []},
            headers={"Authorization": "Bearer reader-token"},
        )
        self.assertEqual(resp.status_code, 500)

    @patch("app.services.recommendation_proxy._request_json")
    def test_initialize_backend_echoes_upstream(self, mock_request_json) -> None:
        mock_request_json.return_value = {"status": "ok"}
        resp = self.client.get("/api/initialize-backend")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"], {"status": "ok"})

    def test_recommendation_requires_authentication(self) -> None:
        resp = self.client.post("/api/recommendation", json={})
        self.assertEqual(resp.status_code, 401)


if __name__ == "__main__":
    unittest.main()
