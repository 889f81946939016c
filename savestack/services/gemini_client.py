"""Gemini client handle and the provider error taxonomy.

Failures coming back from the provider are mapped to ``ProviderError``
subclasses here, at the client boundary, so the error classifier can match
on ``kind`` instead of parsing messages. Exceptions that never passed through
this boundary are translated with the same marker table.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DISCONNECTED_MARKER = "NEURAL_LINK_DISCONNECTED"
ENTITY_NOT_FOUND_MARKER = "Requested entity was not found"
INVALID_KEY_MARKER = "API_KEY_INVALID"


class ProviderErrorKind(str, Enum):
    DISCONNECTED = "disconnected"
    ENTITY_NOT_FOUND = "entity_not_found"
    INVALID_KEY = "invalid_key"
    TRANSIENT = "transient"


class ProviderError(Exception):
    """Base class for failures of an AI provider call."""

    kind = ProviderErrorKind.TRANSIENT

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ProviderDisconnectedError(ProviderError):
    """No usable credential, or the provider refused to authenticate us."""

    kind = ProviderErrorKind.DISCONNECTED

    def __init__(self, message: str = DISCONNECTED_MARKER, status_code: Optional[int] = None):
        super().__init__(message, status_code)


class EntityNotFoundError(ProviderError):
    kind = ProviderErrorKind.ENTITY_NOT_FOUND


class InvalidApiKeyError(ProviderError):
    kind = ProviderErrorKind.INVALID_KEY


class ProviderTransientError(ProviderError):
    kind = ProviderErrorKind.TRANSIENT


_MARKERS = (
    (DISCONNECTED_MARKER, ProviderDisconnectedError),
    (ENTITY_NOT_FOUND_MARKER, EntityNotFoundError),
    (INVALID_KEY_MARKER, InvalidApiKeyError),
)


def error_from_message(message: str) -> ProviderError:
    """Translate a bare error message into the provider taxonomy."""
    for marker, error_cls in _MARKERS:
        if marker in message:
            return error_cls(message)
    return ProviderTransientError(message)


def as_provider_error(error: BaseException) -> ProviderError:
    """Return ``error`` as a ProviderError, translating untyped failures."""
    if isinstance(error, ProviderError):
        return error
    return error_from_message(str(error))


def error_from_response(response: httpx.Response) -> ProviderError:
    """Map a failed Gemini HTTP response to a typed error."""
    body: Dict[str, Any] = {}
    try:
        payload = response.json()
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            body = payload["error"]
    except ValueError:
        pass

    message = body.get("message") or response.text or f"HTTP {response.status_code}"
    reasons = {
        detail.get("reason")
        for detail in body.get("details", [])
        if isinstance(detail, dict)
    }
    status_code = response.status_code

    if INVALID_KEY_MARKER in reasons or INVALID_KEY_MARKER in message:
        return InvalidApiKeyError(f"{INVALID_KEY_MARKER}: {message}", status_code)
    if status_code == 404:
        return EntityNotFoundError(message, status_code)
    if status_code in (401, 403):
        return ProviderDisconnectedError(f"{DISCONNECTED_MARKER}: {message}", status_code)
    return ProviderTransientError(message, status_code)


class GeminiClient:
    """A short-lived handle bound to one credential.

    Handles are built per resolution and are not kept after the feature
    call that needed them.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-3-flash-preview",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._transport = transport

    def __repr__(self) -> str:
        return f"<GeminiClient model={self.model}>"

    async def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
        timeout: float = 60.0,
    ) -> str:
        """Run a single-turn text generation.

        Raises:
            ProviderError: On any failure, already classified by kind.
        """
        body: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if max_output_tokens is not None:
            body["generationConfig"] = {"maxOutputTokens": max_output_tokens}

        data = await self._post(f"/models/{model or self.model}:generateContent", body, timeout)

        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def ping(self, timeout: float = 8.0) -> None:
        """Lightweight validation probe: a one-token generation."""
        await self.generate_text("ping", max_output_tokens=1, timeout=timeout)

    async def _post(self, path: str, body: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self._transport,
                timeout=timeout,
            ) as client:
                response = await client.post(
                    path,
                    json=body,
                    headers={"x-goog-api-key": self._api_key},
                )
        except httpx.TimeoutException as e:
            raise ProviderTransientError(f"Gemini request timed out: {e}")
        except httpx.HTTPError as e:
            raise ProviderTransientError(f"Gemini request failed: {e}")

        if response.is_error:
            error = error_from_response(response)
            logger.warning(f"Gemini call failed ({error.kind.value}, HTTP {response.status_code})")
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderTransientError(f"Gemini returned a non-JSON body: {e}", response.status_code)
        if not isinstance(data, dict):
            raise ProviderTransientError("Gemini returned an unexpected body", response.status_code)
        return data
