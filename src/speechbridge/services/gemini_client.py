"""Thin async client for the Gemini ``generateContent`` REST endpoint."""

import base64
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from speechbridge.config import Settings

logger = logging.getLogger(__name__)

_RATE_PATTERN = re.compile(r"rate=(\d+)")


class GeminiClient:
    """
    Client for Gemini text and speech generation.

    Uses a singleton httpx.AsyncClient for connection pooling across requests
    unless a client is injected explicitly.
    """

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = (
            settings.gemini_api_key.get_secret_value()
            if settings.gemini_api_key else None
        )
        self.base_url = str(settings.gemini_base_url).rstrip("/")
        self.timeout = settings.synthesis_timeout_seconds
        self._client = http_client

        if not self.api_key:
            logger.warning("No Gemini API key configured. Synthesis will fail over to fallback.")

    @classmethod
    def get_http_client(cls) -> httpx.AsyncClient:
        """Get singleton HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(timeout=30.0)
            logger.info("Created singleton httpx.AsyncClient for Gemini")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed Gemini HTTP client")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def generate_content(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a ``generateContent`` request and return the decoded JSON.

        Raises:
            httpx.HTTPError: On transport failures and non-2xx responses
            ValueError: When the key is missing or the body is not JSON
        """
        if not self.api_key:
            raise ValueError("Gemini API key not configured")

        client = self._client or self.get_http_client()
        response = await client.post(
            f"{self.base_url}/models/{model}:generateContent",
            headers={
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
            json=body,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()


def _first_candidate_parts(response: Any) -> List[Dict[str, Any]]:
    """Return the dict parts of the first candidate, ignoring anything else."""
    if not isinstance(response, dict):
        raise ValueError(f"response is a {type(response).__name__}, not an object")
    candidates = response.get("candidates") or []
    if not isinstance(candidates, list) or not candidates:
        return []
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise ValueError("first candidate is not an object")
    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        raise ValueError("candidate content is not an object")
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise ValueError("candidate parts is not a list")
    return [part for part in parts if isinstance(part, dict)]


def extract_text(response: Any) -> str:
    """
    Concatenate the text parts of the first candidate.

    Raises:
        ValueError: If the response is not shaped like a Gemini reply
    """
    texts = (part.get("text") for part in _first_candidate_parts(response))
    return "".join(text for text in texts if isinstance(text, str))


def extract_inline_audio(response: Any) -> Tuple[bytes, Optional[int]]:
    """
    Decode the first inline audio part of a speech response.

    Returns:
        Tuple of (raw PCM bytes, sample rate parsed from the mime type or None)

    Raises:
        ValueError: If the response carries no decodable audio
    """
    parts = _first_candidate_parts(response)
    if not parts:
        raise ValueError("response has no candidates")

    for part in parts:
        inline = part.get("inlineData")
        if not isinstance(inline, dict) or not isinstance(inline.get("data"), str):
            continue
        try:
            audio = base64.b64decode(inline["data"], validate=True)
        except (ValueError, TypeError) as e:
            raise ValueError(f"inline audio is not valid base64: {e}") from e
        mime_type = inline.get("mimeType")
        rate_match = _RATE_PATTERN.search(mime_type if isinstance(mime_type, str) else "")
        return audio, int(rate_match.group(1)) if rate_match else None

    raise ValueError("response has no inline audio")


__all__ = ["GeminiClient", "extract_inline_audio", "extract_text"]
