"""Unit tests for StreamFrameReconstructor."""

import pytest

from agentdesk.a2a import StreamFrameReconstructor, iter_frames
from agentdesk.exceptions import DecodeError


def reconstruct(*chunks, **kwargs):
    reconstructor = StreamFrameReconstructor(**kwargs)
    values = []
    for chunk in chunks:
        values.extend(reconstructor.feed(chunk))
    values.extend(reconstructor.close())
    return values, reconstructor


class TestFraming:
    """Test the three framing styles."""

    def test_sse_frames(self):
        """Test SSE data frames separated by blank lines."""
        values, _ = reconstruct(b'data: {"a":1}\n\ndata: {"a":2}\n\n')
        assert values == [{"a": 1}, {"a": 2}]

    def test_bare_ndjson(self):
        """Test newline-delimited JSON without an SSE prefix."""
        values, _ = reconstruct(b'{"a":1}\n{"a":2}\n')
        assert values == [{"a": 1}, {"a": 2}]

    def test_single_document_without_newline(self):
        """Test one complete document flushed with no delimiter."""
        values, reconstructor = reconstruct(b'{"result": {"content": "direct"}}')
        assert values == [{"result": {"content": "direct"}}]
        assert reconstructor.emitted == 1

    def test_documents_flushed_per_chunk(self):
        """Test a server that flushes one complete document per chunk."""
        values, _ = reconstruct(b'{"a":1}', b'{"a":2}', b'{"a":3}')
        assert values == [{"a": 1}, {"a": 2}, {"a": 3}]

    def test_sse_prefix_without_space(self):
        """Test 'data:' with no space before the payload."""
        values, _ = reconstruct(b'data:{"a":1}\n\n')
        assert values == [{"a": 1}]


class TestChunking:
    """Test chunk boundaries that do not match value boundaries."""

    def test_frame_split_across_chunks(self):
        """Test a frame cut in the middle is emitted once it completes."""
        reconstructor = StreamFrameReconstructor()
        assert reconstructor.feed(b'data: {"state": "wor') == []
        assert reconstructor.feed(b'king"}\n\n') == [{"state": "working"}]
        assert reconstructor.close() == []

    def test_emission_order_follows_arrival(self):
        """Test values come out in the order their boundaries arrived."""
        values, _ = reconstruct(b'data: {"n":1}\n\nda', b'ta: {"n":2}\n', b'\ndata: {"n":3}\n\n')
        assert [v["n"] for v in values] == [1, 2, 3]

    def test_multibyte_character_split(self):
        """Test a UTF-8 character split across two chunks."""
        encoded = '{"text": "café"}\n'.encode("utf-8")
        split = encoded.index(b"\xc3") + 1
        values, _ = reconstruct(encoded[:split], encoded[split:])
        assert values == [{"text": "café"}]

    def test_switching_styles_mid_stream(self):
        """Test a complete-document flush followed by SSE lines."""
        values, _ = reconstruct(b'{"n":1}', b'data: {"n":2}\n\n', b'{"n":3}\n')
        assert [v["n"] for v in values] == [1, 2, 3]

    def test_last_line_without_newline(self):
        """Test a final complete line with no trailing newline is not lost."""
        values, _ = reconstruct(b'{"n":1}\n{"n":2}')
        assert [v["n"] for v in values] == [1, 2]

    def test_incomplete_tail_is_discarded(self):
        """Test an incomplete fragment at stream end is dropped."""
        values, reconstructor = reconstruct(b'data: {"n":1}\n\ndata: {"n":')
        assert values == [{"n": 1}]
        assert reconstructor.buffered == ""


class TestSkipping:
    """Test lines that do not yield values."""

    def test_malformed_line_is_skipped(self):
        """Test one bad line between two good ones does not abort the stream."""
        errors = []
        values, reconstructor = reconstruct(b'{"n":1}\nnot json at all\n{"n":2}\n', on_error=errors.append)

        assert values == [{"n": 1}, {"n": 2}]
        assert len(errors) == 1
        assert errors[0].line == "not json at all"
        assert reconstructor.errors == errors

    def test_blank_lines_and_comments_are_silent(self):
        """Test keep-alives, comments and SSE control fields are ignored without errors."""
        values, reconstructor = reconstruct(
            b': keep-alive\n\nevent: message\nid: 7\nretry: 1000\ndata: {"n":1}\n\n\n'
        )
        assert values == [{"n": 1}]
        assert reconstructor.errors == []

    def test_last_value_is_retained(self):
        """Test the last emitted value is available as the fallback result."""
        _, reconstructor = reconstruct(b'data: {"n":1}\n\ndata: {"n":2}\n\n')
        assert reconstructor.last_value == {"n": 2}
        assert reconstructor.emitted == 2

    def test_feed_after_close(self):
        """Test a closed reconstructor refuses more data."""
        reconstructor = StreamFrameReconstructor()
        reconstructor.close()
        with pytest.raises(RuntimeError):
            reconstructor.feed(b"{}")


class TestSingleDocument:
    """Test the declared single-document short-circuit."""

    def test_body_is_one_value(self):
        """Test a JSON body split over chunks parses as one value at close."""
        values, _ = reconstruct(b'{"result": ', b'{"content": "x"}}\n', single_document=True)
        assert values == [{"result": {"content": "x"}}]

    def test_newlines_are_not_frames(self):
        """Test a pretty-printed document is not split into lines."""
        values, _ = reconstruct(b'{\n  "a": 1,\n  "b": 2\n}\n', single_document=True)
        assert values == [{"a": 1, "b": 2}]

    def test_invalid_body_raises(self):
        """Test an unparseable declared document raises DecodeError."""
        reconstructor = StreamFrameReconstructor(single_document=True)
        reconstructor.feed(b"<html>oops</html>")
        with pytest.raises(DecodeError) as exc_info:
            reconstructor.close()
        assert exc_info.value.raw == "<html>oops</html>"


class TestIterFrames:
    """Test the lazy async form."""

    @pytest.mark.asyncio
    async def test_iter_frames(self):
        """Test values are yielded lazily from an async chunk source."""

        async def chunks():
            yield b'data: {"n":1}\n\n'
            yield b'{"n":2}\n'
            yield b'{"n":3}'

        values = [value async for value in iter_frames(chunks())]
        assert [v["n"] for v in values] == [1, 2, 3]
