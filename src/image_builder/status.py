"""Incremental decoding of line-delimited JSON status streams.

The engine answers build and push requests with a chunked body of JSON
records, one per line. Chunks do not line up with records, so lines are
reassembled first and each one is decoded on its own.
"""

from typing import Iterable, Iterator, Type, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)


def iter_lines(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Reassemble byte chunks into lines, dropping blank ones.

    A final line without a trailing newline is still yielded.
    """
    buffer = b""
    for chunk in chunks:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        buffer += chunk
        while True:
            line, sep, rest = buffer.partition(b"\n")
            if not sep:
                break
            buffer = rest
            line = line.strip()
            if line:
                yield line
    tail = buffer.strip()
    if tail:
        yield tail


class StatusDecodeError(ValueError):
    """A status line is not a JSON object of the expected shape."""

    def __init__(self, line: bytes, reason: str):
        self.line = line
        super().__init__(f"Error decoding status line {line[:200]!r}: {reason}")


def decode_status(line: bytes, model: Type[T]) -> T:
    """Decode one status line into ``model``.

    Raises:
        StatusDecodeError: If the line is not valid JSON or not an object
    """
    try:
        return model.model_validate_json(line)
    except ValidationError as e:
        reason = e.errors()[0]["msg"] if e.errors() else str(e)
        raise StatusDecodeError(line, reason) from e
