# repochat/core/providers.py
import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Type

import httpx
from loguru import logger

from ..config.schema import AppConfig
from .errors import NoCredentialError, ProviderHTTPError, StreamReadError
from .stream_decoder import AnthropicStreamDecoder, OpenAIStreamDecoder, StreamDecoder

GENERIC_FAILURE = "Failed to generate AI response"

class CompletionProvider(ABC):
    """A hosted completion endpoint that streams text tokens."""
    name: str = "Unnamed Provider"
    decoder_class: Type[StreamDecoder]
    url: str

    def __init__(self, api_key: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None):
        if not api_key:
            raise NoCredentialError(f"No API key configured for provider '{self.name}'.")
        self.api_key = api_key
        self._client = client
        self.timeout = timeout

    @classmethod
    @abstractmethod
    def from_config(cls, config: AppConfig, client: Optional[httpx.AsyncClient] = None) -> "CompletionProvider":
        pass

    @classmethod
    @abstractmethod
    def is_configured(cls, config: AppConfig) -> bool:
        pass

    @abstractmethod
    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Shapes the JSON body for a message list whose first entry is the system turn."""
        pass

    @abstractmethod
    def build_headers(self) -> Dict[str, str]:
        pass

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def send_and_stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """
        Sends the conversation and yields tokens as they are decoded.
        The next body chunk is not read until the consumer has handled the
        previous token.
        """
        decoder = self.decoder_class()
        async with self._get_client() as client:
            request = client.build_request("POST", self.url, json=self.build_payload(messages),
                                           headers=self.build_headers())
            logger.info(f"[{self.name}] POST {request.url} ({len(messages)} messages)")
            try:
                response = await client.send(request, stream=True)
            except httpx.TransportError as e:
                raise StreamReadError(f"Could not reach {self.name}: {e}") from e

            try:
                if not response.is_success:
                    raise ProviderHTTPError(await self._error_message(response), status_code=response.status_code)

                token_count = 0
                try:
                    async for chunk in response.aiter_bytes():
                        for token in decoder.decode(chunk):
                            token_count += 1
                            yield token
                except httpx.TransportError as e:
                    raise StreamReadError(f"Stream from {self.name} was interrupted: {e}") from e

                for token in decoder.flush():
                    token_count += 1
                    yield token

                if decoder.skipped_events:
                    logger.warning(f"[{self.name}] Skipped {decoder.skipped_events} malformed events.")
                logger.info(f"[{self.name}] Stream finished: {token_count} tokens.")
            finally:
                await response.aclose()

    async def _error_message(self, response: httpx.Response) -> str:
        try:
            body = await response.aread()
            payload = json.loads(body)
        except (httpx.HTTPError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.debug(f"[{self.name}] Error response body was not JSON: {e}")
            payload = None

        message = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            message = payload["error"].get("message")
        logger.error(f"[{self.name}] HTTP {response.status_code}: {message or GENERIC_FAILURE}")
        return message or GENERIC_FAILURE

# --- Provider Registry ---
_provider_registry: Dict[str, Type[CompletionProvider]] = {}

def register_provider(cls: Type[CompletionProvider]):
    """Class decorator registering a provider under its `name`, in priority order."""
    if not issubclass(cls, CompletionProvider):
        raise TypeError("Provider must inherit from CompletionProvider")
    if not cls.name or cls.name == "Unnamed Provider":
        raise ValueError(f"Provider {cls.__name__} must define a unique 'name' attribute.")
    if cls.name in _provider_registry:
        logger.warning(f"Provider name conflict: '{cls.name}' already registered. Overwriting.")
    _provider_registry[cls.name] = cls
    return cls

def get_available_providers() -> List[Type[CompletionProvider]]:
    return list(_provider_registry.values())

def get_provider_by_name(name: str) -> Optional[Type[CompletionProvider]]:
    return _provider_registry.get(name)

def select_provider(config: AppConfig, client: Optional[httpx.AsyncClient] = None) -> CompletionProvider:
    """Returns the first registered provider with a credential configured."""
    for provider_cls in _provider_registry.values():
        if provider_cls.is_configured(config):
            logger.info(f"Using completion provider: {provider_cls.name}")
            return provider_cls.from_config(config, client=client)
    raise NoCredentialError()

@register_provider
class OpenAIProvider(CompletionProvider):
    name = "openai"
    decoder_class = OpenAIStreamDecoder

    def __init__(self, api_key: str, url: str, model: str, max_tokens: int,
                 temperature: Optional[float] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.url = url; self.model = model
        self.max_tokens = max_tokens; self.temperature = temperature

    @classmethod
    def is_configured(cls, config: AppConfig) -> bool:
        return bool(config.openai.api_key)

    @classmethod
    def from_config(cls, config: AppConfig, client: Optional[httpx.AsyncClient] = None) -> "OpenAIProvider":
        section = config.openai
        return cls(api_key=section.api_key or "", url=section.api_url, model=section.model,
                   max_tokens=section.max_tokens, temperature=section.temperature,
                   client=client, timeout=config.completion_timeout)

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "max_tokens": self.max_tokens,
        }
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body

    def build_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

@register_provider
class AnthropicProvider(CompletionProvider):
    name = "anthropic"
    decoder_class = AnthropicStreamDecoder

    def __init__(self, api_key: str, url: str, model: str, max_tokens: int, api_version: str,
                 temperature: Optional[float] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.url = url; self.model = model; self.api_version = api_version
        self.max_tokens = max_tokens; self.temperature = temperature

    @classmethod
    def is_configured(cls, config: AppConfig) -> bool:
        return bool(config.anthropic.api_key)

    @classmethod
    def from_config(cls, config: AppConfig, client: Optional[httpx.AsyncClient] = None) -> "AnthropicProvider":
        section = config.anthropic
        return cls(api_key=section.api_key or "", url=section.api_url, model=section.model,
                   max_tokens=section.max_tokens, api_version=section.api_version,
                   temperature=section.temperature, client=client, timeout=config.completion_timeout)

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        # The system prompt travels in its own field, not in the message list
        system = next((m["content"] for m in messages if m["role"] == "system"), "")
        conversation = [m for m in messages if m["role"] != "system"]
        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": conversation,
            "stream": True,
        }
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body

    def build_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
        }
