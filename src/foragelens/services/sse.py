"""Server-sent-event framing over an async byte stream.

Network chunks do not line up with event boundaries (or even with UTF-8
character boundaries), so bytes are decoded incrementally and any trailing
partial line is held back until the next chunk arrives.
"""

import codecs
import re
from typing import AsyncIterable, AsyncIterator

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
LINE_BREAK = re.compile(r"\r\n|\r|\n")


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        # A trailing CR may be the first half of a CRLF split across chunks.
        held = ""
        if buffer.endswith("\r"):
            buffer, held = buffer[:-1], "\r"
        *lines, buffer = LINE_BREAK.split(buffer)
        buffer += held
        for line in lines:
            yield line

    buffer += decoder.decode(b"", final=True)
    for line in LINE_BREAK.split(buffer.removesuffix("\r")):
        if line:
            yield line


async def iter_sse_data(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the payload of each ``data:`` line until the ``[DONE]`` sentinel."""
    async for line in iter_lines(chunks):
        stripped = line.strip()
        if not stripped.startswith(DATA_PREFIX):
            continue
        data = stripped[len(DATA_PREFIX):].strip()
        if data == DONE_SENTINEL:
            return
        if data:
            yield data
