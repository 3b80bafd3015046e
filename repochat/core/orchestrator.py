# repochat/core/orchestrator.py
from contextlib import aclosing
from typing import Callable, Optional, Sequence

import httpx
from loguru import logger

from ..config.schema import AppConfig
from .models import ChatMessage, IndexedRepository
from .prompt_engine import PromptEngine
from .providers import CompletionProvider, select_provider
from .token_counter import count_tokens
from .tree_reducer import TreeReducer

TokenSink = Callable[[str], None]

class CompletionOrchestrator:
    """
    Sends a conversation about an indexed repository to the configured
    completion provider and relays the streamed tokens to a sink.

    The provider is chosen once, at construction. Construction fails with
    NoCredentialError when no provider has a credential, so a missing key is
    reported before any request is attempted.
    """

    def __init__(self, config: AppConfig, provider: Optional[CompletionProvider] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.provider = provider or select_provider(config, client=client)
        self.prompt_engine = PromptEngine(TreeReducer.from_config(config.context))

    @property
    def provider_name(self) -> str:
        return self.provider.name

    async def complete(self, history: Sequence[ChatMessage], repository: IndexedRepository,
                       on_token: TokenSink) -> None:
        messages = self.prompt_engine.build_messages(history, repository)

        system_tokens = count_tokens(messages[0]["content"])
        if system_tokens > self.config.context.token_warning:
            logger.warning(f"System prompt for {repository.repo.full_name} is large: ~{system_tokens} tokens.")
        else:
            logger.debug(f"System prompt: ~{system_tokens} tokens.")

        # aclosing releases the HTTP response even if the sink raises
        async with aclosing(self.provider.send_and_stream(messages)) as tokens:
            async for token in tokens:
                on_token(token)
