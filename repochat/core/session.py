# repochat/core/session.py
from typing import Callable, Optional

from loguru import logger

from .models import ChatMessage, IndexedRepository
from .orchestrator import CompletionOrchestrator
from .transcript import Transcript

class ChatSession:
    """One indexed repository and its conversation. Start a new session to switch repositories."""

    def __init__(self, repository: IndexedRepository, orchestrator: CompletionOrchestrator):
        self.repository = repository
        self.orchestrator = orchestrator
        self.transcript = Transcript()
        logger.info(f"Chat session started for {repository.repo.full_name} using {orchestrator.provider_name}.")

    async def ask(self, text: str, on_token: Optional[Callable[[str], None]] = None) -> Optional[ChatMessage]:
        """
        Submits a question. Tokens are appended to the transcript and, when
        given, echoed to `on_token`. Returns None if the submission was rejected.
        """
        async def respond(history, append):
            def sink(token: str):
                append(token)
                if on_token:
                    on_token(token)
            await self.orchestrator.complete(history, self.repository, sink)

        return await self.transcript.submit(text, respond)

    def clear(self) -> None:
        self.transcript.clear()
