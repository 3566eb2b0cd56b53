import pytest

from chat_core.chat.conversion import (
    coalesce_messages,
    convert_to_model_messages,
    flatten_message,
    to_model_messages,
)
from chat_core.domain.exceptions import ConversionError
from chat_core.domain.models import ChatMessage
from chat_core.domain.ui import UIMessage, text_segment


def _msg(role, segments, id="m"):
    return UIMessage(id=id, role=role, segments=segments)


def test_structured_conversion_text_only():
    msgs = [
        _msg("user", [text_segment("A"), text_segment("B")]),
        _msg("assistant", [{"type": "step-start"}, {"type": "reasoning", "text": "hidden"}, text_segment("ok")]),
    ]
    out = convert_to_model_messages(msgs)
    assert out == [ChatMessage(role="user", content="A\nB"), ChatMessage(role="assistant", content="ok")]


def test_structured_conversion_keeps_images_as_parts():
    msgs = [
        _msg(
            "user",
            [
                text_segment("what is this?"),
                {"type": "file", "mediaType": "image/png", "url": "data:image/png;base64,AAAA"},
            ],
        )
    ]
    out = convert_to_model_messages(msgs)
    assert out[0].content == [
        {"type": "text", "text": "what is this?"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]


def test_structured_conversion_rejects_tool_segments():
    msgs = [_msg("assistant", [{"type": "tool-search", "toolCallId": "1", "state": "input-available"}])]
    with pytest.raises(ConversionError):
        convert_to_model_messages(msgs)


def test_structured_conversion_rejects_non_image_files():
    msgs = [_msg("user", [{"type": "file", "mediaType": "application/pdf", "url": "https://x/y.pdf"}])]
    with pytest.raises(ConversionError):
        convert_to_model_messages(msgs)


def test_fallback_used_when_structured_conversion_fails():
    msgs = [
        _msg("user", [text_segment("look up the weather")], id="u1"),
        _msg("assistant", [{"type": "tool-weather", "toolCallId": "1"}, text_segment("sunny")], id="a1"),
    ]
    out, used_fallback = to_model_messages(msgs)
    assert used_fallback is True
    assert out == [
        ChatMessage(role="user", content="look up the weather"),
        ChatMessage(role="assistant", content="sunny"),
    ]


def test_fallback_drops_empty_messages_and_keeps_alternation():
    msgs = [
        _msg("user", [text_segment("one")], id="u1"),
        _msg("assistant", [{"type": "tool-weather", "toolCallId": "1"}], id="a1"),
        _msg("user", [text_segment("two")], id="u2"),
    ]
    out, used_fallback = to_model_messages(msgs)
    assert used_fallback is True
    assert out == [ChatMessage(role="user", content="one\ntwo")]


def test_flatten_message_is_total():
    msg = _msg("user", ["junk", None, {"type": "text"}, text_segment("a")])
    assert flatten_message(msg) == ChatMessage(role="user", content="\na")


def test_coalesce_joins_mixed_content():
    image = {"type": "image_url", "image_url": {"url": "https://x/cat.png"}}
    out = coalesce_messages(
        [
            ChatMessage(role="user", content="caption"),
            ChatMessage(role="user", content=[image]),
            ChatMessage(role="assistant", content=""),
        ]
    )
    assert out == [ChatMessage(role="user", content=[{"type": "text", "text": "caption"}, image])]
