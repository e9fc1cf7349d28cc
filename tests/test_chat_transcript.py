import asyncio

import pytest

from dermascan.models.schemas import ChatMessage, ChatRole
from dermascan.services.chat_transcript import (
    FAILURE_TEXT,
    ChatTranscript,
    apply_fragment,
    begin_send,
    fail_send,
    merge_fragments,
    open_transcript,
)

from conftest import FakeChat, make_diagnosis


def test_open_transcript_greets_with_condition():
    messages = open_transcript(make_diagnosis(condition="Rosacea"))
    assert len(messages) == 1
    assert messages[0].role is ChatRole.MODEL
    assert "Rosacea" in messages[0].text


def test_fragments_fold_into_trailing_message():
    messages = begin_send(open_transcript(make_diagnosis()), "What ingredient helps most?")
    merged = merge_fragments(messages, ["Nia", "cinamide", " helps."])

    assert [m.role for m in merged] == [ChatRole.MODEL, ChatRole.USER, ChatRole.MODEL]
    assert merged[1].text == "What ingredient helps most?"
    assert merged[-1].text == "Niacinamide helps."
    # input is left untouched
    assert messages[-1].text == ""


def test_apply_fragment_needs_model_message():
    with pytest.raises(ValueError):
        apply_fragment([ChatMessage(role=ChatRole.USER, text="hi")], "x")


def test_fail_send_replaces_partial_reply():
    messages = merge_fragments(begin_send([], "hello"), ["partial"])
    failed = fail_send(messages)
    assert [m.text for m in failed] == ["hello", FAILURE_TEXT]


def test_send_streams_updates_in_order():
    chat = FakeChat(["a", "b", "c"])
    transcript = ChatTranscript(make_diagnosis(), chat)
    snapshots = []

    async def on_update(messages):
        snapshots.append(messages[-1].text)

    assert asyncio.run(transcript.send("  question  ", on_update))
    assert chat.sent == ["question"]
    assert snapshots == ["", "a", "ab", "abc"]
    assert transcript.messages[-2].text == "question"
    assert not transcript.is_sending


def test_send_rejects_empty_input():
    transcript = ChatTranscript(make_diagnosis(), FakeChat())
    assert not asyncio.run(transcript.send("   "))
    assert len(transcript.messages) == 1


def test_send_rejected_while_pending():
    class SlowChat:
        def __init__(self):
            self.gate = None

        async def send_message_stream(self, text):
            yield "first"
            await self.gate.wait()
            yield " done"

    chat = SlowChat()
    transcript = ChatTranscript(make_diagnosis(), chat)

    async def scenario():
        chat.gate = gate = asyncio.Event()
        pending = asyncio.create_task(transcript.send("Is it serious?"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert transcript.is_sending
        rejected = await transcript.send("What ingredient helps most?")
        gate.set()
        return rejected, await pending

    rejected, accepted = asyncio.run(scenario())
    assert rejected is False
    assert accepted is True
    assert [m.text for m in transcript.messages if m.role is ChatRole.USER] == ["Is it serious?"]
    assert transcript.messages[-1].text == "first done"


def test_stream_error_appends_failure_and_allows_next_send():
    chat = FakeChat(["par", "tial"], error_after=1)
    transcript = ChatTranscript(make_diagnosis(), chat)

    assert asyncio.run(transcript.send("first"))
    assert transcript.messages[-1].text == FAILURE_TEXT
    assert transcript.messages[-2].text == "first"
    assert not transcript.is_sending

    chat.error_after = None
    assert asyncio.run(transcript.send("second"))
    assert transcript.messages[-1].text == "partial"
