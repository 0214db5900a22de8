"""LLM capabilities consumed by gang members.

The engine only depends on the :class:`LLMCapability` protocol and on a
factory supplied at construction. This module also ships the default
OpenAI-compatible HTTP capability, a demo capability for running without
credentials, and the process-wide request limiter shared by every
HTTP capability.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

import httpx
from pydantic import BaseModel

from ..models.core import LLMOptions
from .exceptions import ConfigurationError, LLMCapabilityError
from .logging import get_logger

logger = get_logger(__name__)

Message = Dict[str, str]

DEFAULT_MODEL = "openai/gpt-oss-120b"

DEMO_REPLY = json.dumps({
    "content": "Demo response: this is a fake gang response. Configure GANGFLOW_LLM_API_KEY for real AI responses.",
    "next": None,
    "actions": [],
})


class LLMResponse(BaseModel):
    """A complete reply, or one streamed chunk of it."""
    content: str = ""


@runtime_checkable
class LLMCapability(Protocol):
    """What a member needs from a language model."""

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        ...

    def stream(self, messages: List[Message]) -> AsyncIterator[LLMResponse]:
        ...


LLMFactory = Callable[[LLMOptions], Union[LLMCapability, Awaitable[LLMCapability]]]


def response_text(response: Any) -> str:
    """Extract the text of an LLM reply.

    Accepts objects with a ``content`` attribute, ``{"content": ...}``
    mappings, and content given as a list of text parts.
    """
    if isinstance(response, dict):
        content = response.get("content")
    else:
        content = getattr(response, "content", response)
    if content is None:
        return ""
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(str(part.get("text", "")))
            else:
                parts.append(str(part))
        return "".join(parts)
    return content if isinstance(content, str) else str(content)


class RequestLimiter:
    """Bounds the number of in-flight LLM requests across the process."""

    def __init__(self, max_concurrency: int = 1):
        self.max_concurrency = max(1, max_concurrency)
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
            self._loop = loop
        return self._semaphore

    async def __aenter__(self):
        await self._get_semaphore().acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._get_semaphore().release()
        return False


_limiter: Optional[RequestLimiter] = None


def get_request_limiter(max_concurrency: Optional[int] = None) -> RequestLimiter:
    """Return the shared limiter, resizing it when a new bound is given."""
    global _limiter
    if _limiter is None or (max_concurrency is not None and _limiter.max_concurrency != max(1, max_concurrency)):
        _limiter = RequestLimiter(max_concurrency or 1)
    return _limiter


class OpenAICompatibleLLM:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.4,
        timeout: float = 120.0,
        limiter: Optional[RequestLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.limiter = limiter or get_request_limiter()
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _body(self, messages: List[Message], stream: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if stream:
            body["stream"] = True
        return body

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        async with self.limiter:
            try:
                async with self._client() as client:
                    resp = await client.post(self.endpoint, headers=self._headers(), json=self._body(messages))
            except httpx.HTTPError as e:
                raise LLMCapabilityError(f"LLM request failed: {e}", endpoint=self.endpoint)

        if resp.status_code >= 400:
            raise LLMCapabilityError(
                f"LLM server error {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
                endpoint=self.endpoint
            )

        data = resp.json()
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            raise LLMCapabilityError("LLM response has no choices", endpoint=self.endpoint)
        return LLMResponse(content=response_text(message))

    async def stream(self, messages: List[Message]) -> AsyncIterator[LLMResponse]:
        async with self.limiter:
            try:
                async with self._client() as client:
                    async with client.stream(
                        "POST", self.endpoint, headers=self._headers(), json=self._body(messages, stream=True)
                    ) as resp:
                        if resp.status_code >= 400:
                            body = (await resp.aread()).decode("utf-8", errors="replace")
                            raise LLMCapabilityError(
                                f"LLM server error {resp.status_code}: {body[:500]}",
                                status_code=resp.status_code,
                                endpoint=self.endpoint
                            )
                        async for line in resp.aiter_lines():
                            if not line.startswith("data:"):
                                continue
                            data = line[len("data:"):].strip()
                            if data == "[DONE]":
                                break
                            try:
                                chunk = json.loads(data)
                                delta = chunk["choices"][0].get("delta") or {}
                            except (json.JSONDecodeError, KeyError, IndexError, TypeError):
                                logger.debug(f"Skipping unparseable stream line: {data[:120]}")
                                continue
                            token = response_text(delta)
                            if token:
                                yield LLMResponse(content=token)
            except httpx.HTTPError as e:
                raise LLMCapabilityError(f"LLM stream failed: {e}", endpoint=self.endpoint)


class DemoLLM:
    """Returns a fixed JSON reply; used when no credentials are configured."""

    def __init__(self, reply: str = DEMO_REPLY):
        self.reply = reply

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        return LLMResponse(content=self.reply)

    async def stream(self, messages: List[Message]) -> AsyncIterator[LLMResponse]:
        yield LLMResponse(content=self.reply)


def create_llm(options: LLMOptions) -> OpenAICompatibleLLM:
    """Default LLM factory, configured from application settings.

    Raises:
        ConfigurationError: If no API key is configured
    """
    from ..config import get_config

    config = get_config()
    if not config.llm_api_key:
        raise ConfigurationError(
            "No LLM API key found. Set GANGFLOW_LLM_API_KEY (and optionally GANGFLOW_LLM_BASE_URL).",
            config_key="llm_api_key"
        )

    model = options.model or config.llm_default_model
    logger.info(f"Using OpenAI-compatible LLM at {config.llm_base_url} with model: {model}")
    return OpenAICompatibleLLM(
        base_url=config.llm_base_url,
        api_key=config.llm_api_key,
        model=model,
        temperature=options.temperature,
        timeout=config.llm_timeout,
        limiter=get_request_limiter(config.llm_max_concurrency),
    )
