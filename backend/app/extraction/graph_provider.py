"""Language-model backed text-to-graph extraction."""
from __future__ import annotations

import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from backend.app.config import ProviderConfig
from backend.app.contracts import KnowledgeGraph
from backend.app.graph.validation import graph_from_payload

LOGGER = logging.getLogger(__name__)

API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"
PREFILL = "{"

_CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_SYSTEM_PROMPT_TEMPLATE = """You are the Naumu Product Architect. Your goal is to extract a structured product definition graph from the user's unstructured idea.

Rules:

Identify key entities and classify them strictly as one of: {entity_types}.

Identify logical relationships between them (e.g., 'Persona -> has -> Need', 'Product -> provides -> Feature').

id must be unique and derived from the label (lowercase, no spaces, slugified). Ensure IDs are unique.

Output ONLY valid JSON matching the schema below. Do not output any conversational text or markdown.

Schema:

{{
  "nodes": [{{"id": "...", "label": "...", "type": "Feature"}}],
  "edges": [{{"source": "...", "target": "...", "label": "..."}}]
}}"""


class GraphProviderError(RuntimeError):
    """Raised when a graph could not be obtained from the language model."""


class GraphProviderUnavailableError(GraphProviderError):
    """Raised when the provider is not configured (for example, no API key)."""


@dataclass
class _SimpleHTTPResponse:
    """Minimal HTTP response wrapper with JSON helpers."""

    status_code: int
    _content: bytes

    def json(self) -> Any:
        return json.loads(self.text)

    @property
    def text(self) -> str:
        return self._content.decode("utf-8", errors="replace")


_HTTPPostCallable = Callable[[str, Dict[str, Any], Dict[str, str]], Any]


class GraphProvider(ABC):
    """Turn free-form text into a knowledge graph."""

    @abstractmethod
    def extract_graph(self, text: str) -> KnowledgeGraph:
        """Return the graph described by ``text``.

        Raises:
            ValueError: If ``text`` is empty or whitespace only.
            GraphProviderError: If the graph could not be produced.
        """

    def close(self) -> None:
        """Release network resources held by the provider."""


def render_system_prompt(entity_types: Sequence[str]) -> str:
    return _SYSTEM_PROMPT_TEMPLATE.format(entity_types=", ".join(entity_types))


def repair_completion(completion: str) -> Dict[str, Any]:
    """Recover the JSON object from a completion that followed a ``{`` pre-fill.

    Code fences and trailing prose are stripped; a completion that repeats
    the opening brace is accepted as well.

    Raises:
        ValueError: If no JSON object can be recovered.
    """

    body = _CODE_FENCE_PATTERN.sub("", completion.strip())
    candidates: List[str] = [PREFILL + body]
    if body.startswith("{"):
        candidates.append(body)
    for candidate in list(candidates):
        closing = candidate.rfind("}")
        if closing != -1 and closing < len(candidate) - 1:
            candidates.append(candidate[: closing + 1])
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError("Completion did not contain a JSON object")


class AnthropicGraphProvider(GraphProvider):
    """Extract graphs through the Anthropic Messages API."""

    _ENDPOINT = "/v1/messages"

    def __init__(
        self,
        *,
        settings: ProviderConfig,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        http_post: Optional[_HTTPPostCallable] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if client is not None and http_post is not None:
            raise ValueError("Provide either a client or http_post, not both")
        resolved_key = api_key or os.getenv(API_KEY_ENV_VAR)
        if not resolved_key:
            raise GraphProviderUnavailableError(
                f"Anthropic API key must be provided via argument or {API_KEY_ENV_VAR}"
            )
        self._settings = settings
        self._http_post = http_post
        self._sleep = sleep
        self._retry_statuses = set(settings.retry_statuses)
        self._system_prompt = render_system_prompt(settings.entity_types)
        self._headers = {
            "x-api-key": resolved_key,
            "anthropic-version": settings.api_version,
            "content-type": "application/json",
        }
        self._owns_client = False
        self._client: Optional[httpx.Client] = None
        if http_post is None:
            if client is None:
                self._client = httpx.Client(base_url=settings.api_base, timeout=settings.timeout_seconds)
                self._owns_client = True
            else:
                self._client = client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()

    def extract_graph(self, text: str) -> KnowledgeGraph:
        if not text or not text.strip():
            raise ValueError("Input text must not be empty")
        payload = self._build_payload(text.strip())
        response_payload = self._post_with_retries(payload)
        completion = self._completion_text(response_payload)
        try:
            parsed = repair_completion(completion)
            graph = graph_from_payload(parsed)
        except ValueError as exc:
            LOGGER.error("Model output could not be parsed into a graph: %s", PREFILL + completion)
            raise GraphProviderError("Failed to parse graph data") from exc
        LOGGER.info(
            "Extracted graph with %d nodes and %d edges (prompt %s)",
            len(graph.nodes),
            len(graph.edges),
            self._settings.prompt_version,
        )
        return graph

    def _build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self._settings.model,
            "max_tokens": self._settings.max_output_tokens,
            "temperature": self._settings.temperature,
            "system": self._system_prompt,
            "messages": [
                {"role": "user", "content": f"Input text: {text}"},
                {"role": "assistant", "content": PREFILL},
            ],
        }

    def _completion_text(self, payload: Dict[str, Any]) -> str:
        content = payload.get("content")
        if not isinstance(content, list) or not content:
            LOGGER.error("Anthropic response missing content: %s", payload)
            raise GraphProviderError("Anthropic response missing content")
        block = content[0]
        if not isinstance(block, dict) or block.get("type") != "text":
            LOGGER.error("Unexpected response block from Anthropic: %s", block)
            raise GraphProviderError("Unexpected response type from Anthropic")
        if payload.get("stop_reason") == "max_tokens":
            LOGGER.warning("Anthropic response hit max tokens; output may be truncated")
        return str(block.get("text", ""))

    def _post_with_retries(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send the payload with retry semantics for transient errors."""

        attempt = 0
        delay = self._settings.backoff_initial_seconds
        while True:
            start = time.perf_counter()
            try:
                response = self._dispatch_request(payload)
            except httpx.HTTPError as exc:
                elapsed = time.perf_counter() - start
                if not self._should_retry_exception(exc, attempt):
                    LOGGER.error("Anthropic request failed after %.2fs: %s", elapsed, exc)
                    raise GraphProviderError(f"Anthropic request failed: {exc}") from exc
                attempt += 1
                LOGGER.warning(
                    "Anthropic request raised %s after %.2fs; retrying (attempt %s)",
                    exc.__class__.__name__,
                    elapsed,
                    attempt,
                )
                self._sleep(min(delay, self._settings.backoff_max_seconds))
                delay = min(delay * 2, self._settings.backoff_max_seconds)
                continue
            elapsed = time.perf_counter() - start
            if response.status_code < 400:
                try:
                    response_payload = response.json()
                except json.JSONDecodeError as exc:
                    LOGGER.error("Anthropic response was not valid JSON after %.2fs", elapsed)
                    raise GraphProviderError("Anthropic response was not valid JSON") from exc
                if not isinstance(response_payload, dict):
                    raise GraphProviderError("Anthropic response was not a JSON object")
                if attempt > 0:
                    LOGGER.info("Anthropic request succeeded after %s retries (%.2fs)", attempt, elapsed)
                return response_payload
            if not self._should_retry(response.status_code, attempt):
                message = self._extract_error_message(response)
                LOGGER.error(
                    "Anthropic request failed with status %s after %.2fs: %s",
                    response.status_code,
                    elapsed,
                    message,
                )
                raise GraphProviderError(
                    f"Anthropic request failed with status {response.status_code}: {message}"
                )
            attempt += 1
            LOGGER.warning(
                "Anthropic request received status %s after %.2fs; retrying (attempt %s)",
                response.status_code,
                elapsed,
                attempt,
            )
            self._sleep(min(delay, self._settings.backoff_max_seconds))
            delay = min(delay * 2, self._settings.backoff_max_seconds)

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        if status_code not in self._retry_statuses:
            return False
        return attempt < self._settings.max_retries

    def _should_retry_exception(self, exc: Exception, attempt: int) -> bool:
        if not isinstance(exc, httpx.TimeoutException):
            return False
        return attempt < self._settings.max_retries

    def _dispatch_request(self, payload: Dict[str, Any]) -> _SimpleHTTPResponse:
        headers = dict(self._headers)
        if self._http_post is not None:
            return self._coerce_response(self._http_post(self._ENDPOINT, payload, headers))
        if self._client is None:
            raise GraphProviderError("No HTTP client configured for AnthropicGraphProvider")
        response = self._client.post(self._ENDPOINT, headers=headers, json=payload)
        return _SimpleHTTPResponse(status_code=response.status_code, _content=response.content)

    @staticmethod
    def _coerce_response(response: Any) -> _SimpleHTTPResponse:
        if isinstance(response, _SimpleHTTPResponse):
            return response
        status_code = int(getattr(response, "status_code", 0) or 0)
        content = getattr(response, "content", None)
        if isinstance(content, (bytes, bytearray)):
            return _SimpleHTTPResponse(status_code=status_code, _content=bytes(content))
        body = getattr(response, "body", None)
        if isinstance(body, (dict, list)):
            return _SimpleHTTPResponse(status_code=status_code, _content=json.dumps(body).encode("utf-8"))
        if isinstance(body, (bytes, bytearray)):
            return _SimpleHTTPResponse(status_code=status_code, _content=bytes(body))
        text = getattr(response, "text", "")
        return _SimpleHTTPResponse(status_code=status_code, _content=str(text or "{}").encode("utf-8"))

    @staticmethod
    def _extract_error_message(response: _SimpleHTTPResponse) -> str:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            return response.text[:200]
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if payload.get("message"):
                return str(payload["message"])
        return response.text[:200]


__all__ = [
    "API_KEY_ENV_VAR",
    "AnthropicGraphProvider",
    "GraphProvider",
    "GraphProviderError",
    "GraphProviderUnavailableError",
    "render_system_prompt",
    "repair_completion",
]
