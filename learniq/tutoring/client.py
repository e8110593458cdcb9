"""
Tutoring Client

Thin async client for an OpenAI-compatible chat completions endpoint. Every
call carries a bounded token budget and a truncated prompt, and the reply is
parsed as a JSON object.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from learniq.common.error_handling import ExternalServiceError
from learniq.common.logger import app_logger
from learniq.config import settings

logger = app_logger.getChild("tutoring.client")

SERVICE_NAME = "tutor"
ABSOLUTE_MAX_TOKENS = 800
TRUNCATION_MARKER = "\n\n...(truncated)"


def cap_tokens(requested: int, configured: Optional[int], absolute_max: int = ABSOLUTE_MAX_TOKENS) -> int:
    if configured is not None and configured > 0:
        return min(requested, configured, absolute_max)
    return min(requested, absolute_max)


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


class TutorClient:
    """
    Args:
        api_url: Chat completions URL.
        api_key: Bearer key; calls fail with ExternalServiceError when unset.
        model: Model name sent with every request.
        max_tokens: Configured per-call token ceiling.
        max_prompt_chars: User message is cut to this many characters.
        timeout: Total request timeout in seconds.
    """

    def __init__(
        self,
        api_url: str = settings.TUTOR_API_URL,
        api_key: Optional[str] = settings.TUTOR_API_KEY,
        model: str = settings.TUTOR_MODEL,
        max_tokens: int = settings.TUTOR_MAX_TOKENS,
        max_prompt_chars: int = settings.TUTOR_MAX_PROMPT_CHARS,
        timeout: float = settings.TUTOR_TIMEOUT
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.max_prompt_chars = max_prompt_chars
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None and not self._session.closed:
            return self._session
        async with self._lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def build_payload(self, system: str, user: str, max_tokens: int) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": truncate(user, self.max_prompt_chars)},
            ],
            "max_tokens": cap_tokens(max_tokens, self.max_tokens),
            "temperature": 0.4,
            "response_format": {"type": "json_object"},
        }

    async def complete_json(self, system: str, user: str, max_tokens: int = 200) -> Dict[str, Any]:
        """
        Send one chat request and return the reply parsed as a JSON object.

        Raises:
            ExternalServiceError: Not configured, transport failure, non-200
                status, or a reply that is not a JSON object.
        """
        if not self.api_key:
            raise ExternalServiceError(SERVICE_NAME, "Tutoring service is not configured")

        payload = self.build_payload(system, user, max_tokens)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        session = await self._get_session()

        try:
            async with session.post(self.api_url, json=payload, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Tutor API error: {response.status}, {error_text[:200]}")
                    raise ExternalServiceError(
                        SERVICE_NAME,
                        f"Tutoring service returned {response.status}",
                        details={"status": response.status},
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExternalServiceError(SERVICE_NAME, "Tutoring service unavailable", cause=e)

        return parse_reply(data)


def parse_reply(data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        content = data["choices"][0]["message"]["content"]
        parsed = json.loads(content)
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ExternalServiceError(SERVICE_NAME, "Tutoring service returned an unreadable reply", cause=e)
    if not isinstance(parsed, dict):
        raise ExternalServiceError(SERVICE_NAME, "Tutoring service returned an unreadable reply")
    return parsed
