"""
RESP2 Protocol Codec

This module handles encoding of commands into RESP2 requests and decoding
of RESP2 replies read from an asyncio stream.

Protocol Format:
    Request:  *<n>\\r\\n followed by n bulk strings ($<len>\\r\\n<bytes>\\r\\n)
    Replies:
        +<text>\\r\\n        simple string  -> str
        -<message>\\r\\n     error          -> ResponseError (returned, not raised)
        :<number>\\r\\n      integer        -> int
        $<len>\\r\\n...      bulk string    -> str / bytes, $-1 -> None
        *<n>\\r\\n...        array          -> list, *-1 -> None
"""

import asyncio
from typing import Any, Iterable

from ..errors import ConnectionLostError, ExecAbortError, ProtocolError, ResponseError
from .commands import Command

CRLF = b"\r\n"


def encode_command(command: Command) -> bytes:
    """
    Encode a command as a RESP array of bulk strings.

    Examples:
        >>> encode_command(Command.of("GET", "key"))
        b'*2\\r\\n$3\\r\\nGET\\r\\n$3\\r\\nkey\\r\\n'
    """
    parts = [command.name.encode('ascii'), *command.args]
    chunks = [b"*%d\r\n" % len(parts)]
    for part in parts:
        chunks.append(b"$%d\r\n" % len(part))
        chunks.append(part)
        chunks.append(CRLF)
    return b"".join(chunks)


def encode_commands(commands: Iterable[Command]) -> bytes:
    """Encode several commands into one pipelined payload."""
    return b"".join(encode_command(c) for c in commands)


def parse_error(message: str) -> ResponseError:
    """Map an error reply onto the matching ResponseError class."""
    if message.startswith("EXECABORT"):
        return ExecAbortError(message)
    return ResponseError(message)


class RespReader:
    """
    Incremental RESP2 reply reader on top of an asyncio StreamReader.

    Usage:
        reader = RespReader(stream_reader, decode_responses=True)
        reply = await reader.read_reply()

    Attributes:
        decode_responses: Decode bulk strings as UTF-8 text
    """

    def __init__(self, stream: asyncio.StreamReader, decode_responses: bool = True):
        self._stream = stream
        self.decode_responses = decode_responses

    def at_eof(self) -> bool:
        """True once the server closed its side and every byte was consumed."""
        return self._stream.at_eof()

    async def _read_line(self) -> bytes:
        try:
            line = await self._stream.readuntil(CRLF)
        except asyncio.IncompleteReadError as e:
            raise ConnectionLostError("connection closed by server") from e
        except asyncio.LimitOverrunError as e:
            raise ProtocolError("reply header too long") from e
        return line[:-2]

    async def _read_exactly(self, size: int) -> bytes:
        try:
            data = await self._stream.readexactly(size + 2)
        except asyncio.IncompleteReadError as e:
            raise ConnectionLostError("connection closed by server") from e
        if data[-2:] != CRLF:
            raise ProtocolError("bulk string not terminated by CRLF")
        return data[:-2]

    @staticmethod
    def _length(payload: bytes) -> int:
        try:
            return int(payload)
        except ValueError as e:
            raise ProtocolError(f"invalid length: {payload!r}") from e

    async def read_reply(self) -> Any:
        """
        Read one complete reply.

        Returns:
            The decoded reply. Error replies are returned as ResponseError
            instances so that they can occupy a position in a result list.

        Raises:
            ConnectionLostError: If the stream ends mid-reply
            ProtocolError: If the reply is malformed
        """
        line = await self._read_line()
        if not line:
            raise ProtocolError("empty reply line")

        marker, payload = line[:1], line[1:]

        if marker == b"+":
            return payload.decode('utf-8', errors='replace')
        if marker == b"-":
            return parse_error(payload.decode('utf-8', errors='replace'))
        if marker == b":":
            return self._length(payload)
        if marker == b"$":
            size = self._length(payload)
            if size < 0:
                return None
            data = await self._read_exactly(size)
            if self.decode_responses:
                try:
                    return data.decode('utf-8')
                except UnicodeDecodeError:
                    # Binary payloads stay as bytes
                    return data
            return data
        if marker == b"*":
            count = self._length(payload)
            if count < 0:
                return None
            return [await self.read_reply() for _ in range(count)]

        raise ProtocolError(f"unknown reply marker: {marker!r}")
