import json

from chat_core.chat.ui_stream import UIMessageStreamWriter, resolve_message_id, sse_frame
from chat_core.domain.models import ChatMessage, ChatStreamChoice, ChatStreamChunk
from chat_core.domain.ui import UIMessage, text_segment


def _chunk(content="", reasoning=None, finish_reason=None, index=0):
    return ChatStreamChunk(
        provider="fake",
        model="m1",
        choices=[
            ChatStreamChoice(
                index=index,
                delta=ChatMessage(role="assistant", content=content, reasoning=reasoning),
                finish_reason=finish_reason,
            )
        ],
    )


def _decode(frames):
    events = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        data = frame[len("data: "):-2]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


def test_sse_frame_format():
    assert sse_frame({"type": "start-step"}) == 'data: {"type":"start-step"}\n\n'
    assert sse_frame("[DONE]") == "data: [DONE]\n\n"


def test_text_only_stream():
    writer = UIMessageStreamWriter("msg-1")
    frames = writer.start()
    frames += writer.push(_chunk("hel"))
    frames += writer.push(_chunk("lo", finish_reason="stop"))
    frames += writer.finish()
    events = _decode(frames)
    assert [e if isinstance(e, str) else e["type"] for e in events] == [
        "start",
        "start-step",
        "text-start",
        "text-delta",
        "text-delta",
        "text-end",
        "finish-step",
        "finish",
        "[DONE]",
    ]
    assert events[0]["messageId"] == "msg-1"
    assert events[2]["id"] == events[3]["id"] == events[5]["id"]
    assert events[7]["finishReason"] == "stop"
    assert writer.response_message.segments == [text_segment("hello")]
    assert writer.response_message.id == "msg-1"


def test_reasoning_then_text():
    writer = UIMessageStreamWriter("msg-2")
    frames = writer.push(_chunk(reasoning="think"))
    frames += writer.push(_chunk(reasoning=" more"))
    frames += writer.push(_chunk("answer"))
    frames += writer.finish()
    types = [e if isinstance(e, str) else e["type"] for e in _decode(frames)]
    assert types[:6] == [
        "reasoning-start",
        "reasoning-delta",
        "reasoning-delta",
        "reasoning-end",
        "text-start",
        "text-delta",
    ]
    assert writer.response_message.segments == [
        {"type": "reasoning", "text": "think more"},
        {"type": "text", "text": "answer"},
    ]


def test_reasoning_suppressed():
    writer = UIMessageStreamWriter("msg-3", send_reasoning=False)
    frames = writer.push(_chunk(reasoning="secret"))
    frames += writer.push(_chunk("visible"))
    assert all("secret" not in f for f in frames)
    assert writer.response_message.segments == [text_segment("visible")]


def test_other_choices_ignored():
    writer = UIMessageStreamWriter("msg-4")
    assert writer.push(_chunk("alt", index=1)) == []
    assert writer.response_message.segments == []


def test_error_frames_close_open_block():
    writer = UIMessageStreamWriter("msg-5")
    frames = writer.push(_chunk("partial"))
    frames += writer.error("OpenRouter API error: 502")
    events = _decode(frames)
    assert events[-3]["type"] == "text-end"
    assert events[-2] == {"type": "error", "errorText": "OpenRouter API error: 502"}
    assert events[-1] == "[DONE]"


def test_resolve_message_id():
    prior = [UIMessage(id="u1", role="user"), UIMessage(id="a1", role="assistant")]
    assert resolve_message_id(prior, prior) == "a1"

    continued = prior[:-1] + [UIMessage(id="a1", role="assistant", segments=[text_segment("more")])]
    assert resolve_message_id(prior, continued) == "a1"

    with_user = prior + [UIMessage(id="u2", role="user")]
    new_id = resolve_message_id(prior, with_user)
    assert new_id not in {"u1", "a1", "u2"}
    assert new_id.startswith("msg-")

    assert resolve_message_id([], [UIMessage(id="u1", role="user")]).startswith("msg-")


def test_finish_reason_uses_stream_vocabulary():
    for raw, expected in (
        ("tool_calls", "tool-calls"),
        ("content_filter", "content-filter"),
        ("length", "length"),
        ("something_new", "other"),
    ):
        writer = UIMessageStreamWriter("msg-6")
        writer.push(_chunk("x", finish_reason=raw))
        finish = [e for e in _decode(writer.finish()) if isinstance(e, dict) and e["type"] == "finish"][0]
        assert finish["finishReason"] == expected

    writer = UIMessageStreamWriter("msg-7")
    writer.push(_chunk("x"))
    finish = [e for e in _decode(writer.finish()) if isinstance(e, dict) and e["type"] == "finish"][0]
    assert "finishReason" not in finish
