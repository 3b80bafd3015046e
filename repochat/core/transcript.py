# repochat/core/transcript.py
import itertools
from typing import Awaitable, Callable, List, Optional, Sequence

from loguru import logger

from .errors import TranscriptBusyError
from .models import ChatMessage, Role, TurnState

# (history, on_token) -> completes when the stream has ended
Responder = Callable[[Sequence[ChatMessage], Callable[[str], None]], Awaitable[None]]

class Transcript:
    """
    Ordered chat turns for one session.

    Each submission appends a user turn and a pending assistant turn. Tokens
    are appended to that assistant turn through its own handle until the
    responder returns (settled) or raises (errored). Only one assistant turn
    may be in flight; further submissions are rejected until it finishes.
    """

    def __init__(self):
        self._messages: List[ChatMessage] = []
        self._ids = itertools.count(1)
        self._active: Optional[ChatMessage] = None

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def active_turn(self) -> Optional[ChatMessage]:
        return self._active

    @property
    def is_busy(self) -> bool:
        return self._active is not None

    def __len__(self):
        return len(self._messages)

    def _new_message(self, role: Role, content: str = "", state: TurnState = TurnState.SETTLED) -> ChatMessage:
        message = ChatMessage(id=next(self._ids), role=role, content=content, state=state)
        self._messages.append(message)
        return message

    def begin_turn(self, text: str) -> Optional[ChatMessage]:
        """
        Appends the user turn and a pending assistant placeholder.
        Returns the placeholder, or None when the input is empty or a turn is
        already in flight.
        """
        if not text or not text.strip():
            logger.debug("Ignoring empty submission.")
            return None
        if self._active is not None:
            logger.warning(f"Rejecting submission while message {self._active.id} is {self._active.state.value}.")
            return None

        self._new_message(Role.USER, text)
        self._active = self._new_message(Role.ASSISTANT, state=TurnState.PENDING)
        return self._active

    def history_for(self, turn: ChatMessage) -> List[ChatMessage]:
        """Turns preceding `turn`, i.e. what the model is asked to continue."""
        index = next(i for i, m in enumerate(self._messages) if m is turn)
        return self._messages[:index]

    async def submit(self, text: str, respond: Responder) -> Optional[ChatMessage]:
        """
        Runs one full exchange. Returns the assistant turn once it has settled
        or errored, or None if the submission was rejected.
        """
        turn = self.begin_turn(text)
        if turn is None:
            return None

        try:
            await respond(self.history_for(turn), turn.append)
        except Exception as e:
            logger.error(f"Response for message {turn.id} failed: {e}")
            turn.fail(str(e) or type(e).__name__)
        except BaseException:
            # Cancellation or Ctrl+C: the turn must not stay in flight
            logger.warning(f"Response for message {turn.id} was cancelled.")
            turn.fail("Cancelled")
            raise
        else:
            turn.settle()
            logger.debug(f"Message {turn.id} settled with {len(turn.content)} chars.")
        finally:
            self._active = None
        return turn

    def clear(self) -> None:
        """Discards every turn. Not allowed while a response is in flight."""
        if self._active is not None:
            raise TranscriptBusyError()
        logger.debug(f"Clearing {len(self._messages)} messages.")
        self._messages.clear()
