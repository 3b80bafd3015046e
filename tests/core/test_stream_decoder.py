# tests/core/test_stream_decoder.py
import pytest

from repochat.core.stream_decoder import AnthropicStreamDecoder, OpenAIStreamDecoder

from helpers import anthropic_delta, openai_delta, sse


def _decode_all(decoder, chunks):
    tokens = []
    for chunk in chunks:
        tokens.extend(decoder.decode(chunk))
    tokens.extend(decoder.flush())
    return tokens


def test_openai_single_token_then_done():
    decoder = OpenAIStreamDecoder()
    raw = b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'
    assert decoder.decode(raw) == ["Hi"]
    assert decoder.done
    assert decoder.flush() == []


def test_openai_ignores_events_after_done():
    decoder = OpenAIStreamDecoder()
    raw = sse(openai_delta("a"), "[DONE]", openai_delta("late"))
    assert _decode_all(decoder, [raw]) == ["a"]


def test_openai_skips_role_and_finish_events():
    raw = sse(
        {"choices": [{"delta": {"role": "assistant"}}]},
        openai_delta("Hello"),
        {"choices": [{"delta": {}, "finish_reason": "stop"}]},
        {"choices": []},
        "[DONE]",
    )
    assert _decode_all(OpenAIStreamDecoder(), [raw]) == ["Hello"]


def test_openai_empty_content_not_emitted():
    assert _decode_all(OpenAIStreamDecoder(), [sse(openai_delta(""), openai_delta("x"))]) == ["x"]


def test_anthropic_single_token():
    decoder = AnthropicStreamDecoder()
    raw = b'data: {"type":"content_block_delta","delta":{"text":"Yo"}}\n\n'
    assert decoder.decode(raw) == ["Yo"]


def test_anthropic_ignores_other_event_types():
    raw = (
        b"event: message_start\n"
        b'data: {"type":"message_start","message":{"id":"msg_1"}}\n\n'
        b"event: content_block_start\n"
        b'data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}\n\n'
        b"event: ping\n"
        b'data: {"type":"ping"}\n\n'
        + sse(anthropic_delta("Hel"), anthropic_delta("lo"))
        + b'data: {"type":"content_block_stop","index":0}\n\n'
        b'data: {"type":"message_delta","delta":{"stop_reason":"end_turn"}}\n\n'
        b'data: {"type":"message_stop"}\n\n'
    )
    decoder = AnthropicStreamDecoder()
    assert _decode_all(decoder, [raw]) == ["Hel", "lo"]
    assert decoder.done


def test_malformed_event_is_skipped_not_fatal():
    raw = b'data: {"choices": [\n\n' + sse(openai_delta("ok"))
    decoder = OpenAIStreamDecoder()
    assert _decode_all(decoder, [raw]) == ["ok"]
    assert decoder.skipped_events == 1

    anthropic = AnthropicStreamDecoder()
    assert _decode_all(anthropic, [b"data: not json\n\n" + sse(anthropic_delta("fine"))]) == ["fine"]
    assert anthropic.skipped_events == 1


def test_multiple_events_in_one_chunk():
    raw = sse(openai_delta("one"), openai_delta(" two"), openai_delta(" three"))
    assert OpenAIStreamDecoder().decode(raw) == ["one", " two", " three"]


def test_event_split_across_chunks_is_buffered():
    raw = sse(openai_delta("Hello"), openai_delta(" world"), "[DONE]")
    for split_at in range(1, len(raw)):
        decoder = OpenAIStreamDecoder()
        assert _decode_all(decoder, [raw[:split_at], raw[split_at:]]) == ["Hello", " world"], split_at


def test_byte_by_byte_delivery():
    raw = sse(anthropic_delta("Yo"), anthropic_delta("!"))
    chunks = [raw[i:i + 1] for i in range(len(raw))]
    assert _decode_all(AnthropicStreamDecoder(), chunks) == ["Yo", "!"]


def test_multibyte_utf8_split_across_chunks():
    raw = sse(openai_delta("héllo ✓"))
    start = raw.index("✓".encode("utf-8"))
    for cut in (start + 1, start + 2): # inside the 3-byte sequence
        with pytest.raises(UnicodeDecodeError):
            raw[:cut].decode("utf-8")
        assert _decode_all(OpenAIStreamDecoder(), [raw[:cut], raw[cut:]]) == ["héllo ✓"]
    chunks = [raw[i:i + 1] for i in range(len(raw))]
    assert _decode_all(OpenAIStreamDecoder(), chunks) == ["héllo ✓"]


def test_trailing_line_without_newline_decoded_on_flush():
    decoder = AnthropicStreamDecoder()
    raw = b'data: {"type":"content_block_delta","delta":{"text":"end"}}'
    assert decoder.decode(raw) == []
    assert decoder.flush() == ["end"]


def test_crlf_line_endings():
    raw = b'data: {"choices":[{"delta":{"content":"Hi"}}]}\r\n\r\ndata: [DONE]\r\n\r\n'
    decoder = OpenAIStreamDecoder()
    assert _decode_all(decoder, [raw]) == ["Hi"]
    assert decoder.done
