"""
Minimal Gemini REST client used by the label reader and place search.

Only the ``generateContent`` call is needed. Requests go through
``requests`` with an explicit timeout; any transport problem, HTTP
error or missing key is reported as ``ResolutionFailure`` so callers
handle every root cause the same way.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from rotaexpress.errors import ResolutionFailure

logger = logging.getLogger(__name__)

API_ROOT = "https://generativelanguage.googleapis.com/v1beta"


class GeminiClient:
    def __init__(self, api_key: Optional[str], timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def generate(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_config: Optional[Dict[str, Any]] = None,
        query: Optional[str] = None,
    ) -> str:
        """Run a single-turn ``generateContent`` request and return its text.

        Args:
            model: Gemini model name, e.g. ``"gemini-2.5-flash"``.
            parts: Content parts (text and/or ``inlineData``).
            tools: Optional tool declarations such as Google Maps grounding.
            tool_config: Optional ``toolConfig`` block.
            query: The user text being resolved, attached to failures.

        Returns:
            The concatenated text of the first candidate, possibly empty.

        Raises:
            ResolutionFailure: On missing credentials, network errors,
                non-200 responses or an undecodable body.
        """
        if not self.api_key:
            raise ResolutionFailure("Gemini API key is not configured", query=query)
        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if tools:
            payload["tools"] = tools
        if tool_config:
            payload["toolConfig"] = tool_config
        url = f"{API_ROOT}/models/{model}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            resp = self._session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.exception("Gemini request to %s failed", model)
            raise ResolutionFailure("Could not reach the Gemini API", query=query) from exc
        if resp.status_code != 200:
            logger.error("Gemini %s returned HTTP %s: %s", model, resp.status_code, resp.text[:200])
            raise ResolutionFailure(f"Gemini API returned HTTP {resp.status_code}", query=query)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ResolutionFailure("Gemini API returned a non-JSON body", query=query) from exc
        return extract_text(data)


def extract_text(data: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate of a Gemini response."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    texts = [part.get("text", "") for part in content.get("parts", []) if isinstance(part, dict)]
    return "".join(texts).strip()
