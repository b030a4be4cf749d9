"""
External AI model client

Talks to an Ollama-compatible ``/api/generate`` endpoint. Every failure
(disabled client, network error, timeout, non-200 status, unusable body) is
raised as ``ExternalModelError``; deciding whether that becomes a fallback or
an error response is left to each call site.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import requests

from fintrack.config import settings
from fintrack.exceptions import ExternalModelError

logger = logging.getLogger(__name__)


class LLMClient:
    """Blocking HTTP client with an awaitable wrapper for request handlers."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        self.base_url = (base_url or settings.OLLAMA_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT_SECONDS
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.enabled = settings.AI_ENABLED if enabled is None else enabled

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def generate(self, prompt: str, json_mode: bool = True, max_tokens: int = 400) -> str:
        """
        Run one non-streaming completion and return the raw model text.

        Args:
            prompt: Full prompt text
            json_mode: Ask the model to emit a JSON document
            max_tokens: Upper bound on generated tokens
        """
        if not self.enabled:
            raise ExternalModelError("AI model is disabled")

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": settings.AI_TEMPERATURE,  # Low temperature for consistent results
                "top_p": 0.9,
                "num_predict": max_tokens,
            },
        }
        if json_mode:
            payload["format"] = "json"

        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.warning("AI model request timed out after %ss", self.timeout)
            raise ExternalModelError("AI model request timed out")
        except requests.exceptions.RequestException as e:
            logger.warning(f"AI model not reachable: {e}")
            raise ExternalModelError("AI model is unreachable") from e

        if response.status_code != 200:
            logger.error(f"AI model API error: {response.status_code}")
            raise ExternalModelError(f"AI model returned status {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ExternalModelError("AI model returned a non-JSON body") from e

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise ExternalModelError("AI model returned an empty response")
        return text

    async def agenerate(self, prompt: str, json_mode: bool = True, max_tokens: int = 400) -> str:
        """
        Awaitable ``generate``: runs in a worker thread, bounded by the timeout.

        Cancelling the awaiting task stops waiting immediately; the worker
        thread finishes on its own within the requests timeout.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.generate, prompt, json_mode, max_tokens),
                timeout=self.timeout + 1,
            )
        except asyncio.TimeoutError:
            raise ExternalModelError("AI model request timed out")


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object in a model response.

    Models sometimes wrap the object in prose or code fences, so the outermost
    ``{...}`` span is tried when the whole text is not valid JSON.
    """
    if not isinstance(text, str):
        raise ExternalModelError("AI model response is not text")

    candidates = [text.strip()]
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ExternalModelError("AI model response does not contain a JSON object")


# Singleton instance
_llm_client = None


def get_llm_client() -> LLMClient:
    """Get or create the AI model client instance."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
