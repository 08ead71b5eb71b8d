"""
Integration tests for the public link generation endpoints.

Tests the protection pipeline using FastAPI TestClient.
"""

from typing import Any, Dict

from fastapi.testclient import TestClient

from src.linkguard.config import Settings
from src.linkguard.main import create_app


class TestCsrfTokenEndpoint:
    """Session bootstrap."""

    def test_issues_token_and_session_cookie(self, test_client: TestClient) -> None:
        response = test_client.get("/api/csrf-token")

        assert response.status_code == 200
        token = response.json()["csrf_token"]
        assert len(token) == 64
        assert "sid" in response.cookies
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=strict" in set_cookie

    def test_token_stable_for_session(self, test_client: TestClient) -> None:
        first = test_client.get("/api/csrf-token").json()["csrf_token"]
        second = test_client.get("/api/csrf-token").json()["csrf_token"]
        assert first == second


class TestGenerateEndpoint:
    """POST /api/generate."""

    def test_generates_link_with_quota_headers(
        self,
        test_client: TestClient,
        csrf_headers: Dict[str, str],
        valid_generate_request: Dict[str, Any],
    ) -> None:
        response = test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)

        assert response.status_code == 200
        assert response.json() == {"link": "https://wa.me/14155550123?text=Hello%20there"}
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_phone_only(self, test_client: TestClient, csrf_headers: Dict[str, str]) -> None:
        response = test_client.post("/api/generate", json={"phone": "+442071838750"}, headers=csrf_headers)
        assert response.status_code == 200
        assert response.json()["link"] == "https://wa.me/442071838750"

    def test_missing_csrf_token_rejected(
        self, test_client: TestClient, valid_generate_request: Dict[str, Any]
    ) -> None:
        test_client.get("/api/csrf-token")
        response = test_client.post("/api/generate", json=valid_generate_request)

        assert response.status_code == 403
        assert response.json()["error"] == "csrf_rejected"
        assert response.json()["message"] == "Invalid or missing CSRF token"

    def test_wrong_csrf_token_rejected(
        self, test_client: TestClient, csrf_headers: Dict[str, str], valid_generate_request: Dict[str, Any]
    ) -> None:
        response = test_client.post(
            "/api/generate", json=valid_generate_request, headers={"X-CSRF-Token": "0" * 64}
        )
        assert response.status_code == 403
        assert response.json()["error"] == "csrf_rejected"

    def test_token_without_session_rejected(
        self, test_client: TestClient, csrf_headers: Dict[str, str], valid_generate_request: Dict[str, Any]
    ) -> None:
        # Same app, no session cookie
        stranger = TestClient(test_client.app)
        response = stranger.post("/api/generate", json=valid_generate_request, headers=csrf_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "csrf_rejected"

    def test_invalid_body_still_counts_toward_quota(
        self, test_client: TestClient, csrf_headers: Dict[str, str]
    ) -> None:
        test_client.post("/api/generate", json={"phone": "bad"}, headers=csrf_headers)
        assert test_client.app.state.limiter.count_recent("testclient") == 1

    def test_invalid_phone_is_bad_request(self, test_client: TestClient, csrf_headers: Dict[str, str]) -> None:
        response = test_client.post("/api/generate", json={"phone": "0123"}, headers=csrf_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["message"] == "Invalid phone number. Must be in E.164 format (e.g., +1234567890)."

    def test_message_too_long_is_bad_request(self, test_client: TestClient, csrf_headers: Dict[str, str]) -> None:
        response = test_client.post(
            "/api/generate",
            json={"phone": "+14155550123", "message": "x" * 65537},
            headers=csrf_headers,
        )
        assert response.status_code == 400
        assert "Message too long" in response.json()["message"]

    def test_message_is_sanitized_before_link_building(
        self, test_client: TestClient, csrf_headers: Dict[str, str]
    ) -> None:
        response = test_client.post(
            "/api/generate",
            json={"phone": "+14155550123", "message": "<b>"},
            headers=csrf_headers,
        )
        assert response.status_code == 200
        assert response.json()["link"] == "https://wa.me/14155550123?text=%26lt%3Bb%26gt%3B"


class TestRateLimiting:
    """Threshold, auto-block and block list through the API."""

    def test_threshold_then_block(
        self, test_client: TestClient, csrf_headers: Dict[str, str], valid_generate_request: Dict[str, Any]
    ) -> None:
        for i in range(5):
            response = test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)
            assert response.status_code == 200
            assert response.headers["X-RateLimit-Remaining"] == str(4 - i)

        response = test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3600"
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.json()["details"]["retry_after"] == 3600

        response = test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "ip_blocked"

    def test_block_lifts_after_expiry(
        self, test_client: TestClient, csrf_headers: Dict[str, str], valid_generate_request: Dict[str, Any], clock
    ) -> None:
        for _ in range(6):
            test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)

        clock.advance(minutes=59)
        response = test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)
        assert response.status_code == 403

        clock.advance(minutes=1)
        response = test_client.post("/api/generate", json=valid_generate_request, headers=csrf_headers)
        assert response.status_code == 200

    def test_requests_without_csrf_still_count(
        self, test_client: TestClient, valid_generate_request: Dict[str, Any]
    ) -> None:
        for _ in range(5):
            assert test_client.post("/api/generate", json=valid_generate_request).status_code == 403

        response = test_client.post("/api/generate", json=valid_generate_request)
        assert response.status_code == 429

    def test_csrf_token_endpoint_not_rate_limited(self, test_client: TestClient) -> None:
        for _ in range(10):
            assert test_client.get("/api/csrf-token").status_code == 200

    def test_forwarded_for_used_behind_trusted_proxy(
        self, test_settings: Settings, clock, valid_generate_request: Dict[str, Any]
    ) -> None:
        test_settings.security.trust_proxy = True
        with TestClient(create_app(test_settings, clock=clock)) as client:
            headers = {"X-CSRF-Token": client.get("/api/csrf-token").json()["csrf_token"]}

            for _ in range(5):
                response = client.post(
                    "/api/generate",
                    json=valid_generate_request,
                    headers={**headers, "X-Forwarded-For": "203.0.113.1, 10.0.0.1"},
                )
                assert response.status_code == 200

            response = client.post(
                "/api/generate",
                json=valid_generate_request,
                headers={**headers, "X-Forwarded-For": "203.0.113.1"},
            )
            assert response.status_code == 429

            response = client.post(
                "/api/generate",
                json=valid_generate_request,
                headers={**headers, "X-Forwarded-For": "203.0.113.2"},
            )
            assert response.status_code == 200


class TestResponseHardening:
    """Headers and error shapes on every response."""

    def test_security_headers(self, test_client: TestClient) -> None:
        response = test_client.get("/healthz")
        assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers

    def test_unknown_api_route(self, test_client: TestClient) -> None:
        response = test_client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_oversized_body_rejected(self, test_client: TestClient, csrf_headers: Dict[str, str]) -> None:
        response = test_client.post(
            "/api/generate",
            content=b"{" + b" " * 1_048_576 + b"}",
            headers={**csrf_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 413
