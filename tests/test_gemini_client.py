"""
Tests for the Gemini client handle and its error mapping.
"""

import json

import httpx
import pytest

from savestack.services.gemini_client import (
    DISCONNECTED_MARKER,
    EntityNotFoundError,
    GeminiClient,
    InvalidApiKeyError,
    ProviderDisconnectedError,
    ProviderErrorKind,
    ProviderTransientError,
    as_provider_error,
    error_from_message,
    error_from_response,
)


def gemini_error(status_code: int, message: str, reason: str = None) -> httpx.Response:
    error = {"code": status_code, "message": message}
    if reason:
        error["details"] = [{"@type": "type.googleapis.com/google.rpc.ErrorInfo", "reason": reason}]
    return httpx.Response(status_code, json={"error": error})


# =============================================================================
# ERROR MAPPING
# =============================================================================

class TestErrorFromResponse:
    def test_invalid_key_reason(self):
        error = error_from_response(gemini_error(400, "API key not valid.", reason="API_KEY_INVALID"))
        assert isinstance(error, InvalidApiKeyError)
        assert error.status_code == 400

    def test_not_found(self):
        error = error_from_response(gemini_error(404, "Requested entity was not found."))
        assert isinstance(error, EntityNotFoundError)

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_unauthenticated(self, status_code):
        error = error_from_response(gemini_error(status_code, "Permission denied"))
        assert isinstance(error, ProviderDisconnectedError)
        assert DISCONNECTED_MARKER in error.message

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_other_statuses_are_transient(self, status_code):
        error = error_from_response(gemini_error(status_code, "try again"))
        assert isinstance(error, ProviderTransientError)

    def test_non_json_body(self):
        error = error_from_response(httpx.Response(502, text="Bad Gateway"))
        assert isinstance(error, ProviderTransientError)
        assert error.message == "Bad Gateway"


class TestErrorFromMessage:
    def test_markers(self):
        assert error_from_message(DISCONNECTED_MARKER).kind is ProviderErrorKind.DISCONNECTED
        assert error_from_message("Requested entity was not found").kind is ProviderErrorKind.ENTITY_NOT_FOUND
        assert error_from_message("API_KEY_INVALID").kind is ProviderErrorKind.INVALID_KEY
        assert error_from_message("boom").kind is ProviderErrorKind.TRANSIENT

    def test_typed_errors_pass_through(self):
        error = EntityNotFoundError("gone", 404)
        assert as_provider_error(error) is error

    def test_default_disconnected_message(self):
        assert ProviderDisconnectedError().message == DISCONNECTED_MARKER


# =============================================================================
# CLIENT
# =============================================================================

class TestGeminiClient:
    async def test_generate_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-goog-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "there"}]}}],
            })

        client = GeminiClient(
            "AIza-test",
            base_url="https://gemini.test/v1beta",
            transport=httpx.MockTransport(handler),
        )
        text = await client.generate_text("Say hello")

        assert text == "Hello there"
        assert seen["url"] == "https://gemini.test/v1beta/models/gemini-3-flash-preview:generateContent"
        assert seen["key"] == "AIza-test"
        assert seen["body"]["contents"][0]["parts"][0]["text"] == "Say hello"
        assert "AIza-test" not in repr(client)

    async def test_ping_requests_a_single_token(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"candidates": []})

        client = GeminiClient("AIza-test", transport=httpx.MockTransport(handler))
        await client.ping()

        assert bodies[0]["generationConfig"] == {"maxOutputTokens": 1}

    async def test_rejected_key_raises_typed_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return gemini_error(400, "API key not valid.", reason="API_KEY_INVALID")

        client = GeminiClient("bad", transport=httpx.MockTransport(handler))

        with pytest.raises(InvalidApiKeyError):
            await client.ping()

    async def test_network_failure_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = GeminiClient("AIza-test", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderTransientError):
            await client.generate_text("hi")

    async def test_non_json_success_body_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy login</html>")

        client = GeminiClient("AIza-test", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderTransientError) as exc_info:
            await client.ping()
        assert exc_info.value.status_code == 200
