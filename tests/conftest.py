"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests:
- An in-process asyncio RESP server implementing the commands the suite
  needs, including WATCH/MULTI/EXEC and CLUSTER SLOTS
- A scripted transport for executor tests that need no network
"""

import asyncio
import random
import socket
from contextlib import closing
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Sequence, Set, Tuple

import pytest
import pytest_asyncio

from kvclient.cluster.topology import ClusterTopology, NodeAddress
from kvclient.config.settings import Settings
from kvclient.network.transport import CompletionStatus, RawCompletion
from kvclient.protocol.commands import Command


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# In-process RESP server
# ============================================================================

class Simple(str):
    """Marks a reply as a RESP simple string."""


class Err(str):
    """Marks a reply as a RESP error."""


NULL_ARRAY = object()
OK = Simple("OK")
QUEUED = Simple("QUEUED")
WRONGTYPE = Err("WRONGTYPE Operation against a key holding the wrong kind of value")
NOT_INTEGER = Err("ERR value is not an integer or out of range")


def encode_reply(value: Any) -> bytes:
    if value is NULL_ARRAY:
        return b"*-1\r\n"
    if value is None:
        return b"$-1\r\n"
    if isinstance(value, Err):
        return b"-" + value.encode() + b"\r\n"
    if isinstance(value, Simple):
        return b"+" + value.encode() + b"\r\n"
    if isinstance(value, bool):
        return b":%d\r\n" % int(value)
    if isinstance(value, int):
        return b":%d\r\n" % value
    if isinstance(value, str):
        value = value.encode()
    if isinstance(value, bytes):
        return b"$%d\r\n" % len(value) + value + b"\r\n"
    if isinstance(value, (list, tuple)):
        return b"*%d\r\n" % len(value) + b"".join(encode_reply(v) for v in value)
    raise TypeError(f"cannot encode {value!r}")


class _Session:
    """Per-connection transaction state."""

    def __init__(self):
        self.in_multi = False
        self.dirty = False
        self.queue: List[List[bytes]] = []
        self.watched: Dict[bytes, int] = {}
        self.db = 0

    def reset(self) -> None:
        self.in_multi = False
        self.dirty = False
        self.queue = []
        self.watched = {}


class FakeRespServer:
    """
    Minimal RESP2 server backed by one dict per logical database.

    Every write bumps a per-key version; WATCH remembers the version seen
    and EXEC replies with a null array when any watched version moved.
    """

    def __init__(self, host: str = '127.0.0.1', port: int = None, name: str = "node"):
        self.host = host
        self.port = port if port is not None else find_free_port()
        self.name = name
        self.databases: Dict[int, Dict[bytes, Any]] = {0: {}}
        self._db = 0
        self.versions: Dict[bytes, int] = {}
        self.slots_reply: Optional[list] = None
        self.commands_processed = 0
        self.received: List[List[bytes]] = []
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: Set[asyncio.StreamWriter] = set()

    @property
    def address(self) -> NodeAddress:
        return NodeAddress(self.host, self.port)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self.handle_client, self.host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for writer in list(self._writers):
            writer.close()
        await self._server.wait_closed()
        self._server = None

    async def drop_connections(self) -> None:
        """Close every client connection, keeping the listener open."""
        for writer in list(self._writers):
            writer.close()
        await asyncio.sleep(0.1)

    async def _read_request(self, reader: asyncio.StreamReader) -> Optional[List[bytes]]:
        line = await reader.readline()
        if not line:
            return None
        count = int(line[1:].strip())
        parts = []
        for _ in range(count):
            size = int((await reader.readline())[1:].strip())
            parts.append((await reader.readexactly(size + 2))[:-2])
        return parts

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.add(writer)
        session = _Session()
        try:
            while True:
                request = await self._read_request(reader)
                if request is None:
                    break
                self.received.append(request)
                if request[0].upper() == b"KILLME":
                    # Hang up without replying
                    break
                reply = await self.dispatch(session, request)
                writer.write(encode_reply(reply))
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            self._writers.discard(writer)
            writer.close()

    # ------------------------------------------------------------------
    # Command dispatch
    # ------------------------------------------------------------------

    def _bump(self, key: bytes) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    async def dispatch(self, session: _Session, request: List[bytes]) -> Any:
        name = request[0].upper().decode()
        args = request[1:]

        if name == "MULTI":
            if session.in_multi:
                return Err("ERR MULTI calls can not be nested")
            session.in_multi = True
            return OK
        if name == "DISCARD":
            session.reset()
            return OK
        if name == "EXEC":
            return await self._exec(session)
        if name == "WATCH":
            if session.in_multi:
                return Err("ERR WATCH inside MULTI is not allowed")
            for key in args:
                session.watched[key] = self.versions.get(key, 0)
            return OK
        if name == "UNWATCH":
            session.watched = {}
            return OK

        if session.in_multi:
            if not hasattr(self, f"cmd_{name.lower()}"):
                session.dirty = True
                return Err(f"ERR unknown command '{name}'")
            session.queue.append(request)
            return QUEUED

        return await self.run(session, name, args)

    async def _exec(self, session: _Session) -> Any:
        if not session.in_multi:
            return Err("ERR EXEC without MULTI")
        try:
            if session.dirty:
                return Err("EXECABORT Transaction discarded because of previous errors.")
            if any(self.versions.get(k, 0) != v for k, v in session.watched.items()):
                return NULL_ARRAY
            return [await self.run(session, r[0].upper().decode(), r[1:]) for r in session.queue]
        finally:
            session.reset()

    async def run(self, session: _Session, name: str, args: List[bytes]) -> Any:
        handler = getattr(self, f"cmd_{name.lower()}", None)
        if handler is None:
            return Err(f"ERR unknown command '{name}'")
        self.commands_processed += 1
        self._db = session.db
        try:
            reply = await handler(*args)
        except TypeError:
            return Err(f"ERR wrong number of arguments for '{name.lower()}' command")
        if name == "SELECT" and reply == OK:
            session.db = int(args[0])
        return reply

    @property
    def data(self) -> Dict[bytes, Any]:
        """Keyspace of the database the current command runs against."""
        return self.databases.setdefault(self._db, {})

    def _typed(self, key: bytes, kind: type) -> Any:
        value = self.data.get(key)
        if value is not None and not isinstance(value, kind):
            raise LookupError
        return value

    # -- server ---------------------------------------------------------

    async def cmd_ping(self, message: bytes = None):
        return Simple("PONG") if message is None else message

    async def cmd_info(self, *sections):
        return (
            f"# Server\r\nredis_version:7.2.0\r\nrun_id:{self.name}\r\ntcp_port:{self.port}\r\n"
            f"# Stats\r\ntotal_commands_processed:{self.commands_processed}\r\n"
        )

    async def cmd_select(self, index: bytes):
        return OK if 0 <= int(index) < 16 else Err("ERR DB index is out of range")

    async def cmd_cluster(self, subcommand: bytes):
        if subcommand.upper() != b"SLOTS" or self.slots_reply is None:
            return Err("ERR This instance has cluster support disabled")
        return self.slots_reply

    async def cmd_debug(self, subcommand: bytes, seconds: bytes = b"0"):
        await asyncio.sleep(float(seconds))
        return OK

    # -- strings ----------------------------------------------------------

    async def cmd_set(self, key: bytes, value: bytes, *options: bytes):
        flags = [o.upper() for o in options]
        if b"NX" in flags and key in self.data:
            return None
        self.data[key] = value
        self._bump(key)
        return OK

    async def cmd_get(self, key: bytes):
        try:
            return self._typed(key, bytes)
        except LookupError:
            return WRONGTYPE

    async def cmd_del(self, *keys: bytes):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self._bump(key)
                removed += 1
        return removed

    async def cmd_exists(self, *keys: bytes):
        return sum(1 for key in keys if key in self.data)

    async def cmd_incrby(self, key: bytes, amount: bytes):
        try:
            current = int(self._typed(key, bytes) or b"0")
        except (LookupError, ValueError):
            return NOT_INTEGER
        current += int(amount)
        self.data[key] = str(current).encode()
        self._bump(key)
        return current

    async def cmd_incr(self, key: bytes):
        return await self.cmd_incrby(key, b"1")

    async def cmd_decr(self, key: bytes):
        return await self.cmd_incrby(key, b"-1")

    async def cmd_mget(self, *keys: bytes):
        return [v if isinstance(v, bytes) else None for v in (self.data.get(k) for k in keys)]

    async def cmd_mset(self, *pairs: bytes):
        for key, value in zip(pairs[0::2], pairs[1::2]):
            self.data[key] = value
            self._bump(key)
        return OK

    # -- hashes -----------------------------------------------------------

    def _hash(self, key: bytes, create: bool = False) -> Optional[dict]:
        value = self._typed(key, dict)
        if value is None and create:
            value = self.data[key] = {}
        return value

    async def cmd_hset(self, key: bytes, *pairs: bytes):
        try:
            h = self._hash(key, create=True)
        except LookupError:
            return WRONGTYPE
        added = 0
        for field, value in zip(pairs[0::2], pairs[1::2]):
            added += field not in h
            h[field] = value
        self._bump(key)
        return added

    async def cmd_hsetnx(self, key: bytes, field: bytes, value: bytes):
        h = self._hash(key, create=True)
        if field in h:
            return 0
        h[field] = value
        self._bump(key)
        return 1

    async def cmd_hget(self, key: bytes, field: bytes):
        try:
            return (self._hash(key) or {}).get(field)
        except LookupError:
            return WRONGTYPE

    async def cmd_hdel(self, key: bytes, *fields: bytes):
        h = self._hash(key) or {}
        removed = sum(1 for f in fields if h.pop(f, None) is not None)
        if removed:
            self._bump(key)
        return removed

    async def cmd_hlen(self, key: bytes):
        return len(self._hash(key) or {})

    async def cmd_hvals(self, key: bytes):
        return list((self._hash(key) or {}).values())

    async def cmd_hmget(self, key: bytes, *fields: bytes):
        h = self._hash(key) or {}
        return [h.get(f) for f in fields]

    async def cmd_hexists(self, key: bytes, field: bytes):
        return int(field in (self._hash(key) or {}))

    async def cmd_hgetall(self, key: bytes):
        try:
            h = self._hash(key) or {}
        except LookupError:
            return WRONGTYPE
        return [item for pair in h.items() for item in pair]

    async def cmd_hincrby(self, key: bytes, field: bytes, amount: bytes):
        h = self._hash(key, create=True)
        value = int(h.get(field, b"0")) + int(amount)
        h[field] = str(value).encode()
        self._bump(key)
        return value

    async def cmd_hincrbyfloat(self, key: bytes, field: bytes, amount: bytes):
        h = self._hash(key, create=True)
        value = float(h.get(field, b"0")) + float(amount)
        h[field] = repr(value).encode()
        self._bump(key)
        return h[field]

    # -- sets -------------------------------------------------------------

    async def cmd_sadd(self, key: bytes, *members: bytes):
        try:
            s = self._typed(key, set)
        except LookupError:
            return WRONGTYPE
        if s is None:
            s = self.data[key] = set()
        added = len(set(members) - s)
        s.update(members)
        self._bump(key)
        return added

    async def cmd_srem(self, key: bytes, *members: bytes):
        s = self._typed(key, set) or set()
        removed = len(set(members) & s)
        s.difference_update(members)
        if removed:
            self._bump(key)
        return removed

    async def cmd_smembers(self, key: bytes):
        return sorted(self._typed(key, set) or set())

    async def cmd_scard(self, key: bytes):
        return len(self._typed(key, set) or set())

    async def cmd_sismember(self, key: bytes, member: bytes):
        return int(member in (self._typed(key, set) or set()))


# ============================================================================
# Scripted transport
# ============================================================================

class ScriptedTransport:
    """
    Transport double that answers from a script instead of the network.

    ``responder(commands, targets, atomic)`` returns the RawCompletion to
    deliver, or raises to simulate a transport failure.
    """

    def __init__(self, responder: Callable[..., RawCompletion] = None):
        self.responder = responder if responder is not None else self.echo_names
        self.submits: List[Tuple[Tuple[Command, ...], Tuple[NodeAddress, ...], bool]] = []
        self.closed = False
        self.retained = None

    @staticmethod
    def echo_names(commands: Sequence[Command], targets: Sequence[NodeAddress], atomic: bool) -> RawCompletion:
        """Every node answers each command with "<NAME>@<port>"."""
        return RawCompletion(
            status=CompletionStatus.OK,
            per_node={node: [f"{c.name}@{node.port}" for c in commands] for node in targets},
        )

    async def submit(self, commands, targets, atomic=True) -> RawCompletion:
        self.submits.append((tuple(commands), tuple(targets), atomic))
        return self.responder(commands, targets, atomic)

    async def retain(self, nodes) -> None:
        self.retained = tuple(nodes)

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts and no connection retries."""
    return Settings(
        CONNECT_TIMEOUT=1.0,
        REQUEST_TIMEOUT=2.0,
        CONNECT_RETRIES=0,
        BACKOFF_FACTOR=0.01,
        ERROR_POLICY="value",
    )


@pytest.fixture
def three_node_topology() -> ClusterTopology:
    """Three shards; the first one has a replica."""
    return ClusterTopology.from_slot_map({
        (0, 5460): ["10.0.0.1:7000", "10.0.0.4:7003"],
        (5461, 10922): "10.0.0.2:7001",
        (10923, 16383): "10.0.0.3:7002",
    }, rng=random.Random(7))


@pytest.fixture
def scripted_transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[FakeRespServer, None]:
    """
    Create and start a single in-process server.

    This fixture:
    1. Creates a FakeRespServer on a random free port
    2. Starts listening
    3. Yields the server for testing
    4. Closes it and its connections after the test
    """
    srv = FakeRespServer(name="standalone")
    await srv.start()

    yield srv

    await srv.stop()


@pytest_asyncio.fixture
async def cluster_servers() -> AsyncGenerator[List[FakeRespServer], None]:
    """Three servers answering CLUSTER SLOTS with an even three-way split."""
    servers = [FakeRespServer(name=f"node{i + 1}") for i in range(3)]
    ranges = [(0, 5460), (5461, 10922), (10923, 16383)]
    slots_reply = [
        [start, end, [srv.host, srv.port, f"id-{srv.name}"]]
        for (start, end), srv in zip(ranges, servers)
    ]
    for srv in servers:
        srv.slots_reply = slots_reply
        await srv.start()

    yield servers

    for srv in servers:
        await srv.stop()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
