# adapters/stream_parser.py
from __future__ import annotations

import codecs
import json
from typing import Any, Dict, Iterable, Iterator, List, Union

from loguru import logger


class JsonObjectStream:
    """
    Incremental extractor of top-level JSON objects from an unframed text stream.

    Network chunks carry no object boundaries, so the lexer keeps a buffer across
    `feed()` calls and scans it character by character, tracking string literals
    (`in_string`, `escape_next`) so that braces inside strings are not counted.
    When `brace_count` drops back to zero the slice `buffer[start_index:i+1]` is
    one complete object; it is parsed and the consumed prefix is dropped.

    Everything between objects (`[`, `,`, whitespace, SSE `data: ` prefixes) is
    ignored, which lets the same lexer read Gemini's streamed JSON array and
    line-delimited or SSE framings alike. Objects that fail to parse are skipped.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.buffer = ""
        self.brace_count = 0
        self.in_string = False
        self.escape_next = False
        self.start_index = -1
        # where scanning resumes; chars before it were already classified
        self._pos = 0
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.skipped = 0

    def feed(self, chunk: Union[bytes, str]) -> Iterator[Dict[str, Any]]:
        """Add a chunk and yield every object it completes, in stream order."""
        text = self._decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
        if text:
            self.buffer += text
        return self._drain()

    def close(self) -> Iterator[Dict[str, Any]]:
        """Flush the decoder at end of stream; a dangling partial object is discarded."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self.buffer += tail
        yield from self._drain()
        if self.start_index >= 0:
            logger.debug("JsonObjectStream: discarding incomplete object at end of stream ({} chars)",
                         len(self.buffer) - self.start_index)
        self._reset(keep=0)

    @property
    def pending(self) -> bool:
        """True while part of an object is buffered."""
        return self.start_index >= 0

    # ---------------- internals ----------------

    def _reset(self, keep: int) -> None:
        self.buffer = self.buffer[keep:] if keep else ""
        self.brace_count = 0
        self.in_string = False
        self.escape_next = False
        self.start_index = -1
        self._pos = 0

    def _drain(self) -> Iterator[Dict[str, Any]]:
        buf = self.buffer
        i = self._pos
        while i < len(buf):
            ch = buf[i]
            if self.start_index < 0:
                # outside any object: only an opening brace matters
                if ch == "{":
                    self.start_index = i
                    self.brace_count = 1
                i += 1
                continue

            if self.escape_next:
                self.escape_next = False
            elif self.in_string:
                if ch == "\\":
                    self.escape_next = True
                elif ch == '"':
                    self.in_string = False
            elif ch == '"':
                self.in_string = True
            elif ch == "{":
                self.brace_count += 1
            elif ch == "}":
                self.brace_count -= 1
                if self.brace_count == 0:
                    raw = buf[self.start_index:i + 1]
                    self.buffer = buf = buf[i + 1:]
                    self.start_index = -1
                    self._pos = i = 0
                    obj = self._parse(raw)
                    if obj is not None:
                        yield obj
                    continue
            i += 1

        if self.start_index < 0:
            # nothing open: the scanned text was all separators
            self.buffer = ""
            self._pos = 0
        else:
            self._pos = i

    def _parse(self, raw: str):
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            self.skipped += 1
            logger.debug("JsonObjectStream: skipping malformed object ({}): {}", e, raw[:200])
            return None
        return obj


def iter_json_objects(chunks: Iterable[Union[bytes, str]]) -> Iterator[Dict[str, Any]]:
    """Convenience wrapper: every complete object found in `chunks`."""
    stream = JsonObjectStream()
    for chunk in chunks:
        yield from stream.feed(chunk)
    yield from stream.close()


def parse_all(chunks: Iterable[Union[bytes, str]]) -> List[Dict[str, Any]]:
    return list(iter_json_objects(chunks))
