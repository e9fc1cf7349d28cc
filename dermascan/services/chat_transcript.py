"""
Chat transcript for the follow-up conversation about one diagnosis.

The merge is a fold over the reply fragments: each fragment is appended to
the trailing model message. The helpers return new lists and never mutate
their input, so a canned fragment sequence is enough to test them.
"""
import logging
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional, Protocol, Sequence

from dermascan.models.schemas import ChatMessage, ChatRole, Diagnosis

logger = logging.getLogger(__name__)

FAILURE_TEXT = "Sorry, I encountered an error processing that request."


def greeting(diagnosis: Diagnosis) -> str:
    return (
        f"I've analyzed your scan for {diagnosis.condition}. Do you have any specific questions "
        "about the recommended ingredients or how to start your new routine?"
    )


def open_transcript(diagnosis: Diagnosis) -> List[ChatMessage]:
    return [ChatMessage(role=ChatRole.MODEL, text=greeting(diagnosis))]


def begin_send(messages: Sequence[ChatMessage], text: str) -> List[ChatMessage]:
    return [
        *messages,
        ChatMessage(role=ChatRole.USER, text=text),
        ChatMessage(role=ChatRole.MODEL, text=""),
    ]


def apply_fragment(messages: Sequence[ChatMessage], fragment: str) -> List[ChatMessage]:
    if not messages or messages[-1].role is not ChatRole.MODEL:
        raise ValueError("No model message to stream into")
    last = messages[-1]
    return [*messages[:-1], last.model_copy(update={"text": last.text + fragment})]


def merge_fragments(messages: Sequence[ChatMessage], fragments: Iterable[str]) -> List[ChatMessage]:
    merged = list(messages)
    for fragment in fragments:
        merged = apply_fragment(merged, fragment)
    return merged


def fail_send(messages: Sequence[ChatMessage]) -> List[ChatMessage]:
    """Replace the unfinished reply with the generic failure notice."""
    kept = list(messages)
    if len(kept) >= 2 and kept[-1].role is ChatRole.MODEL and kept[-2].role is ChatRole.USER:
        kept.pop()
    return [*kept, ChatMessage(role=ChatRole.MODEL, text=FAILURE_TEXT)]


class ChatSession(Protocol):
    def send_message_stream(self, text: str) -> AsyncIterator[str]:
        ...


UpdateCallback = Callable[[List[ChatMessage]], Awaitable[None]]


class ChatTranscript:
    """Owns the transcript of one diagnosis and serialises sends."""

    def __init__(self, diagnosis: Diagnosis, chat: ChatSession):
        self.diagnosis = diagnosis
        self.chat = chat
        self.messages: List[ChatMessage] = open_transcript(diagnosis)
        self.is_sending = False

    def can_send(self, text: str) -> bool:
        return bool(text.strip()) and not self.is_sending

    async def send(self, text: str, on_update: Optional[UpdateCallback] = None) -> bool:
        """Send ``text`` and stream the reply into the transcript.

        Returns False without touching the transcript when the input is empty
        or a previous send has not finished.
        """
        if not self.can_send(text):
            return False

        self.is_sending = True
        try:
            self.messages = begin_send(self.messages, text.strip())
            await self._notify(on_update)
            try:
                async for fragment in self.chat.send_message_stream(text.strip()):
                    self.messages = apply_fragment(self.messages, fragment)
                    await self._notify(on_update)
            except Exception as e:
                logger.error(f"Chat stream failed: {str(e)}", exc_info=True)
                self.messages = fail_send(self.messages)
                await self._notify(on_update)
        finally:
            self.is_sending = False
        return True

    async def _notify(self, on_update: Optional[UpdateCallback]) -> None:
        if on_update is not None:
            await on_update(list(self.messages))
