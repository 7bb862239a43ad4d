import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from shopquery.core.config import settings
from shopquery.core.errors import CompletionUnavailableError

logger = logging.getLogger(__name__)

CHAT_SYSTEM_PROMPT = "You are a helpful, concise assistant for a shop catalogue."


@dataclass(frozen=True)
class Completion:
    """Outcome of one completion call: either content or the reason it failed."""

    content: Optional[str] = None
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.content is not None


def build_llm_http_client() -> httpx.AsyncClient:
    """Shared client for the OpenAI-compatible completion API."""
    base_url = settings.LLM_BASE_URL.strip()
    if not base_url.endswith("/"):
        base_url += "/"

    headers = {}
    if settings.LLM_API_KEY:
        headers["Authorization"] = f"Bearer {settings.LLM_API_KEY}"

    return httpx.AsyncClient(
        base_url=base_url, headers=headers, timeout=settings.LLM_TIMEOUT_SECONDS
    )


class ChatLlm:
    """
    Thin client over `POST chat/completions`.

    Without an API key the service counts as disabled: chat echoes the input,
    classification answers "chitchat", and JSON completions fail so callers
    take their fallback path.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        model: str = settings.LLM_MODEL,
        enabled: bool = bool(settings.LLM_API_KEY),
        timeout: float = settings.LLM_TIMEOUT_SECONDS,
    ):
        self.http = http
        self.model = model
        self.enabled = enabled
        self.timeout = timeout

    async def chat(self, system: str, user: str) -> str:
        if not self.enabled:
            return f"[llm-disabled] {user}"

        outcome = await self.complete(system, user, temperature=0.2)
        if not outcome.ok:
            return f"[llm-error] {outcome.failure}"
        return outcome.content

    async def classify(self, system: str, user: str) -> str:
        if not self.enabled:
            return "chitchat"

        outcome = await self.complete(system, user, temperature=0.0)
        return outcome.content if outcome.ok else "chitchat"

    async def complete_json(self, system: str, user: str) -> Dict[str, Any]:
        """JSON-mode completion parsed into a dict; raises CompletionUnavailableError."""
        if not self.enabled:
            raise CompletionUnavailableError("completion service disabled (no API key)")

        outcome = await self.complete(system, user, temperature=0.1, json_mode=True)
        if not outcome.ok:
            raise CompletionUnavailableError(outcome.failure)

        try:
            parsed = json.loads(outcome.content)
        except ValueError as e:
            raise CompletionUnavailableError(f"response is not JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise CompletionUnavailableError("response JSON is not an object")
        return parsed

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float = 0.2,
        json_mode: bool = False,
    ) -> Completion:
        """
        One call to the completion service.

        Transport errors, timeouts, non-2xx statuses and malformed bodies all
        come back as a failed Completion; cancellation still propagates.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.wait_for(
                self.http.post("chat/completions", json=payload), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            return Completion(failure=f"timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            return Completion(failure=f"transport error: {e}")

        if response.is_error:
            return Completion(failure=f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return Completion(failure=f"unexpected response shape: {e!r}")

        if not isinstance(content, str) or not content.strip():
            return Completion(failure="empty completion")
        return Completion(content=content)
