"""
Node Connection Module

One persistent TCP connection to one node, speaking RESP2.

A batch is written in a single pipelined write and its replies are read
back in order while the connection lock is held, so batches from
concurrent callers never interleave on the wire. Any failure or
cancellation during an exchange leaves the stream in an unknown state;
the connection is closed and re-opened by the next call.
"""

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from ..config.settings import Settings, settings as default_settings
from ..errors import ConnectionLostError, ExecAbortError, ProtocolError, RequestTimeoutError, ResponseError
from ..protocol.commands import Command
from ..protocol.resp import RespReader, encode_commands

logger = logging.getLogger(__name__)

MULTI = Command.of("MULTI")
EXEC = Command.of("EXEC")


class NodeConnection:
    """
    Connection to a single node.

    Usage:
        conn = NodeConnection(NodeAddress("localhost", 6379))
        replies = await conn.execute([Command.of("SET", "k", "v")], atomic=True)
        await conn.close()

    Attributes:
        address: The node address
        settings: Timeouts and retry settings
        database_id: Database restored on every (re)connect; follows SELECT
    """

    def __init__(self, address, settings: Settings = None, database_id: int = 0):
        self.address = address
        self.settings = settings if settings is not None else default_settings
        self.database_id = database_id

        self._reader: Optional[RespReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        if self._writer is None or self._writer.is_closing():
            return False
        # A server that closed an idle connection leaves EOF in the buffer
        return not self._reader.at_eof()

    async def _open(self) -> None:
        """
        Open the TCP connection, retrying with exponential backoff.

        Raises:
            ConnectionLostError: If every attempt failed
        """
        host, port = self.address
        attempts = max(1, self.settings.CONNECT_RETRIES + 1)
        last_error: Optional[BaseException] = None

        for attempt in range(attempts):
            if attempt:
                await asyncio.sleep(self.settings.backoff_delay(attempt - 1))
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(host, port),
                    timeout=self.settings.CONNECT_TIMEOUT
                )
            except (OSError, asyncio.TimeoutError) as e:
                last_error = e
                logger.debug(f"Connection attempt {attempt + 1}/{attempts} to {self.address} failed: {e!r}")
                continue

            self._reader = RespReader(reader, decode_responses=self.settings.DECODE_RESPONSES)
            self._writer = writer
            logger.debug(f"Connected to {self.address}")

            if self.database_id:
                await self._select_database()
            return

        logger.error(f"Could not connect to {self.address} after {attempts} attempt(s)")
        raise ConnectionLostError(f"cannot connect to {self.address}: {last_error}") from last_error

    async def _select_database(self) -> None:
        replies = await self._exchange([Command.of("SELECT", self.database_id)], 1)
        if isinstance(replies[0], ResponseError):
            await self.close()
            raise replies[0]

    async def _exchange(self, commands: Sequence[Command], expected: int) -> List[Any]:
        """Write a pipelined payload and read ``expected`` replies."""
        self._writer.write(encode_commands(commands))
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise ConnectionLostError(f"write to {self.address} failed: {e}") from e

        async def read_all() -> List[Any]:
            return [await self._reader.read_reply() for _ in range(expected)]

        try:
            return await asyncio.wait_for(read_all(), timeout=self.settings.REQUEST_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"no reply from {self.address} within {self.settings.REQUEST_TIMEOUT}s"
            ) from e
        except (ConnectionError, OSError) as e:
            raise ConnectionLostError(f"read from {self.address} failed: {e}") from e

    async def execute(self, commands: Sequence[Command], atomic: bool = True) -> Optional[List[Any]]:
        """
        Run a batch on this node.

        Args:
            commands: Commands in execution order
            atomic: Wrap the batch in MULTI/EXEC

        Returns:
            One decoded reply per command. For atomic batches, None when the
            server aborted the transaction because a watched key changed.

        Raises:
            TransportError: Connection lost, timeout or malformed reply
            ExecAbortError: The server discarded the transaction
        """
        async with self._lock:
            try:
                if not self.is_connected:
                    await self.close()
                    await self._open()
                if atomic:
                    replies = await self._execute_atomic(commands)
                else:
                    replies = await self._exchange(commands, len(commands))
                if replies is not None:
                    self._track_database(commands, replies)
                return replies
            except BaseException as e:
                # Covers cancellation too: the stream position is unknown
                if not isinstance(e, ResponseError):
                    logger.warning(f"Dropping connection to {self.address}: {e!r}")
                    await self.close()
                raise

    def _track_database(self, commands: Sequence[Command], replies: Sequence[Any]) -> None:
        # A successful SELECT moves the session; a reconnect must restore it
        for command, reply in zip(commands, replies):
            if command.name == "SELECT" and command.args and not isinstance(reply, ResponseError):
                self.database_id = int(command.args[0])
                logger.debug(f"Connection to {self.address} now uses database {self.database_id}")

    async def _execute_atomic(self, commands: Sequence[Command]) -> Optional[List[Any]]:
        replies = await self._exchange([MULTI, *commands, EXEC], len(commands) + 2)
        multi_reply, queued, exec_reply = replies[0], replies[1:-1], replies[-1]

        if isinstance(multi_reply, ResponseError):
            # e.g. nested MULTI; the commands ran outside a transaction
            raise ProtocolError(f"MULTI rejected by {self.address}: {multi_reply}")

        if isinstance(exec_reply, ResponseError):
            queued_errors = [r for r in queued if isinstance(r, ResponseError)]
            raise ExecAbortError(str(exec_reply), queued_errors)

        if exec_reply is None:
            logger.debug(f"Transaction aborted by {self.address}: watched key changed")
            return None

        if not isinstance(exec_reply, list) or len(exec_reply) != len(commands):
            raise ProtocolError(
                f"EXEC reply from {self.address} does not match {len(commands)} queued command(s)"
            )
        return exec_reply

    async def close(self) -> None:
        """Close the connection; safe to call more than once."""
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection to {self.address}: {e!r}")

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"NodeConnection({self.address}, {state})"
