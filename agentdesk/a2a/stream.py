"""Reconstruction of JSON values from an agent's streaming response body.

Agents disagree on how they frame a streamed task: some send Server-Sent
Events (``data: {...}``), some send bare newline-delimited JSON, and some
flush one complete JSON document per write with no delimiter at all. The
reconstructor accepts all three, even mixed within one response.

Each accumulation step works on the text received since the last emission:

1. Parse the whole accumulated text as one JSON value. On success emit it
   and clear the buffer.
2. Otherwise split on newlines, keep the trailing (possibly incomplete)
   segment buffered and parse every complete line, stripping an SSE
   ``data:`` prefix when present. A line that does not parse is reported as
   a ``FrameParseError`` and skipped.

Blank lines, SSE comments and SSE control fields carry no payload and are
skipped silently.
"""

import codecs
import inspect
import json
from typing import Any, AsyncIterator, Callable, List, Optional, Tuple, Union

from agentdesk.exceptions import DecodeError, FrameParseError
from agentdesk.utils.log import log_debug, log_warning
from agentdesk.utils.string import truncate

SSE_DATA_PREFIX = "data:"
SSE_CONTROL_PREFIXES = ("event:", "id:", "retry:")

ErrorCallback = Callable[[FrameParseError], Any]


class StreamFrameReconstructor:
    """Turns raw body chunks into an ordered sequence of parsed JSON values.

    The buffer is scoped to one response; create a new instance per call.

    Args:
        on_error: Called with a FrameParseError for every skipped line
        single_document: The response declared a single JSON document.
            ``feed`` only accumulates and ``close`` parses the whole body.
    """

    def __init__(self, on_error: Optional[ErrorCallback] = None, single_document: bool = False):
        self.on_error = on_error
        self.single_document = single_document
        self.last_value: Any = None
        self.emitted: int = 0
        self.errors: List[FrameParseError] = []
        self._buffer: str = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed: bool = False

    @property
    def buffered(self) -> str:
        """Text received but not yet emitted."""
        return self._buffer

    def feed(self, chunk: Union[bytes, str]) -> List[Any]:
        """Add one chunk of the body and return the values it completed, in order."""
        if self._closed:
            raise RuntimeError("Cannot feed a closed stream")

        self._buffer += self._decode(chunk)
        if self.single_document:
            return []
        return self._drain()

    def close(self) -> List[Any]:
        """End the stream and return any value still held in the buffer."""
        if self._closed:
            return []
        self._closed = True
        self._buffer += self._decoder.decode(b"", final=True)

        if self.single_document:
            return self._parse_document()

        remainder = self._buffer.strip()
        self._buffer = ""
        if not remainder or self._is_silent(remainder):
            return []

        # A last line without a trailing newline is still a complete frame
        value, ok = self._parse_line(remainder)
        if ok:
            return [self._emit(value)]

        log_warning(f"Discarding incomplete fragment at end of stream: {truncate(remainder)}")
        return []

    def _decode(self, chunk: Union[bytes, str]) -> str:
        if isinstance(chunk, str):
            return chunk
        return self._decoder.decode(bytes(chunk))

    def _drain(self) -> List[Any]:
        values: List[Any] = []
        if not self._buffer.strip():
            return values

        # 1. The whole accumulated text may be one complete document
        try:
            value = json.loads(self._buffer)
        except ValueError:
            pass
        else:
            self._buffer = ""
            log_debug("Parsed complete JSON document from stream")
            values.append(self._emit(value))
            return values

        # 2. Newline-delimited frames, SSE or bare JSON
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        for raw_line in lines:
            line = raw_line.strip()
            if not line or self._is_silent(line):
                continue

            log_debug(f"Processing stream line: {truncate(line)}")
            value, ok = self._parse_line(line)
            if ok:
                values.append(self._emit(value))
        return values

    def _parse_line(self, line: str) -> Tuple[Any, bool]:
        payload = line
        if line.startswith(SSE_DATA_PREFIX):
            payload = line[len(SSE_DATA_PREFIX) :].strip()

        try:
            return json.loads(payload), True
        except ValueError as e:
            self._report(FrameParseError(line=line, reason=str(e)))
            return None, False

    def _parse_document(self) -> List[Any]:
        raw = self._buffer
        self._buffer = ""
        try:
            value = json.loads(raw)
        except ValueError as e:
            raise DecodeError(raw=raw, message=f"Response body is not a valid JSON document: {e}") from e
        return [self._emit(value)]

    def _emit(self, value: Any) -> Any:
        self.emitted += 1
        self.last_value = value
        return value

    def _report(self, error: FrameParseError) -> None:
        self.errors.append(error)
        log_warning(f"Skipping unparseable stream line ({error.reason}): {truncate(error.line)}")
        if self.on_error is not None:
            self.on_error(error)

    @staticmethod
    def _is_silent(line: str) -> bool:
        # SSE comments / keep-alives and control fields
        return line.startswith(":") or line.startswith(SSE_CONTROL_PREFIXES)


async def iter_frames(
    chunks: AsyncIterator[Union[bytes, str]],
    reconstructor: Optional[StreamFrameReconstructor] = None,
) -> AsyncIterator[Any]:
    """Lazily yield JSON values reconstructed from an async iterator of body chunks."""
    reconstructor = reconstructor or StreamFrameReconstructor()
    async for chunk in chunks:
        for value in reconstructor.feed(chunk):
            yield value
    for value in reconstructor.close():
        yield value


async def call_handler(handler: Optional[Callable[[Any], Any]], value: Any) -> None:
    """Invoke a sync or async per-value callback, awaiting it when needed."""
    if handler is None:
        return
    result = handler(value)
    if inspect.isawaitable(result):
        await result
