"""
Transaction Builder Module

Accumulates an ordered sequence of commands that the server executes as
a single atomic unit (MULTI ... EXEC).

Every accumulation method appends exactly one command and returns the
builder itself, so calls can be chained:

    transaction = ClusterTransaction().set("key", "foo").get("key")

Insertion order is execution order. A builder belongs to one caller
until it is handed to an executor, which takes its commands and leaves
the builder consumed; any further use raises TransactionConsumedError.
"""

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from ..errors import TransactionConsumedError
from ..protocol.commands import Arg, Command, ResponseType

T = TypeVar("T", bound="BaseTransaction")


def _require(items: Sequence, what: str) -> None:
    if not items:
        raise ValueError(f"{what} must not be empty")


class BaseTransaction:
    """
    Commands shared by standalone and cluster transactions.

    Attributes:
        commands: Read-only view of the accumulated commands
    """

    def __init__(self):
        self._commands: List[Command] = []
        self._consumed = False

    def _append(self: T, command: Command) -> T:
        if self._consumed:
            raise TransactionConsumedError("transaction was already handed to an executor")
        self._commands.append(command)
        return self

    def _add(self: T, name: str, *args: Arg, response_type: ResponseType = ResponseType.RAW) -> T:
        return self._append(Command.of(name, *args, response_type=response_type))

    @property
    def commands(self) -> Tuple[Command, ...]:
        return tuple(self._commands)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def take_commands(self) -> Tuple[Command, ...]:
        """
        Transfer the accumulated commands out of the builder.

        After this call the builder is consumed and rejects further use.

        Raises:
            TransactionConsumedError: If the commands were already taken
        """
        if self._consumed:
            raise TransactionConsumedError("transaction was already handed to an executor")
        commands = tuple(self._commands)
        self._commands = []
        self._consumed = True
        return commands

    def __len__(self) -> int:
        return len(self._commands)

    def __repr__(self) -> str:
        state = "consumed" if self._consumed else f"{len(self._commands)} commands"
        return f"{type(self).__name__}({state})"

    # ------------------------------------------------------------------
    # Generic
    # ------------------------------------------------------------------

    def custom_command(self: T, args: Iterable[Arg]) -> T:
        """
        Queue an arbitrary command given as a full argument list.

        Args:
            args: Command name followed by its arguments, e.g. ["INFO", "stats"]
        """
        return self._append(Command.from_args(args))

    def ping(self: T, message: Optional[str] = None) -> T:
        """Queue PING. Replies "PONG", or echoes ``message``."""
        if message is None:
            return self._add("PING")
        return self._add("PING", message)

    def info(self: T, sections: Optional[Sequence[str]] = None) -> T:
        """Queue INFO for the given sections (server default when omitted)."""
        return self._add("INFO", *(sections or ()))

    # ------------------------------------------------------------------
    # Strings and keys
    # ------------------------------------------------------------------

    def get(self: T, key: str) -> T:
        """Queue GET. Replies the value, or None when the key is missing."""
        return self._add("GET", key)

    def set(
            self: T,
            key: str,
            value: Arg,
            expiry_seconds: Optional[int] = None,
            only_if_missing: bool = False,
    ) -> T:
        """
        Queue SET.

        Args:
            key: The key to store
            value: The value to store
            expiry_seconds: Optional time-to-live (EX)
            only_if_missing: Only set when the key does not exist (NX)

        Replies "OK", or None when ``only_if_missing`` prevented the write.
        """
        args: List[Arg] = [key, value]
        if expiry_seconds is not None:
            if expiry_seconds <= 0:
                raise ValueError("expiry_seconds must be positive")
            args += ["EX", expiry_seconds]
        if only_if_missing:
            args.append("NX")
        return self._add("SET", *args)

    def delete(self: T, keys: Sequence[str]) -> T:
        """Queue DEL. Replies the number of keys removed."""
        _require(keys, "keys")
        return self._add("DEL", *keys)

    def exists(self: T, keys: Sequence[str]) -> T:
        """Queue EXISTS. Replies how many of ``keys`` exist."""
        _require(keys, "keys")
        return self._add("EXISTS", *keys)

    def incr(self: T, key: str) -> T:
        return self._add("INCR", key)

    def incr_by(self: T, key: str, amount: int) -> T:
        return self._add("INCRBY", key, amount)

    def decr(self: T, key: str) -> T:
        return self._add("DECR", key)

    def mget(self: T, keys: Sequence[str]) -> T:
        """Queue MGET. Replies a list with None for missing keys."""
        _require(keys, "keys")
        return self._add("MGET", *keys)

    def mset(self: T, mapping: Mapping[str, Arg]) -> T:
        """Queue MSET. Replies "OK"."""
        _require(mapping, "mapping")
        args: List[Arg] = []
        for key, value in mapping.items():
            args += [key, value]
        return self._add("MSET", *args)

    # ------------------------------------------------------------------
    # Hashes
    # ------------------------------------------------------------------

    def hget(self: T, key: str, field: str) -> T:
        return self._add("HGET", key, field)

    def hset(self: T, key: str, mapping: Mapping[str, Arg]) -> T:
        """Queue HSET. Replies the number of fields that were added."""
        _require(mapping, "mapping")
        args: List[Arg] = [key]
        for field, value in mapping.items():
            args += [field, value]
        return self._add("HSET", *args)

    def hsetnx(self: T, key: str, field: str, value: Arg) -> T:
        """Queue HSETNX. Replies True when the field was set."""
        return self._add("HSETNX", key, field, value, response_type=ResponseType.BOOL)

    def hdel(self: T, key: str, fields: Sequence[str]) -> T:
        """Queue HDEL. Replies the number of fields removed."""
        _require(fields, "fields")
        return self._add("HDEL", key, *fields)

    def hlen(self: T, key: str) -> T:
        return self._add("HLEN", key)

    def hvals(self: T, key: str) -> T:
        return self._add("HVALS", key)

    def hmget(self: T, key: str, fields: Sequence[str]) -> T:
        _require(fields, "fields")
        return self._add("HMGET", key, *fields)

    def hexists(self: T, key: str, field: str) -> T:
        return self._add("HEXISTS", key, field, response_type=ResponseType.BOOL)

    def hgetall(self: T, key: str) -> T:
        """Queue HGETALL. Replies a field -> value dict."""
        return self._add("HGETALL", key, response_type=ResponseType.MAP)

    def hincr_by(self: T, key: str, field: str, amount: int) -> T:
        return self._add("HINCRBY", key, field, amount)

    def hincr_by_float(self: T, key: str, field: str, amount: float) -> T:
        return self._add("HINCRBYFLOAT", key, field, amount, response_type=ResponseType.FLOAT)

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    def sadd(self: T, key: str, members: Sequence[Arg]) -> T:
        """Queue SADD. Replies the number of members added."""
        _require(members, "members")
        return self._add("SADD", key, *members)

    def srem(self: T, key: str, members: Sequence[Arg]) -> T:
        """Queue SREM. Replies the number of members removed."""
        _require(members, "members")
        return self._add("SREM", key, *members)

    def smembers(self: T, key: str) -> T:
        return self._add("SMEMBERS", key, response_type=ResponseType.SET)

    def scard(self: T, key: str) -> T:
        return self._add("SCARD", key)

    def sismember(self: T, key: str, member: Arg) -> T:
        return self._add("SISMEMBER", key, member, response_type=ResponseType.BOOL)


class Transaction(BaseTransaction):
    """Transaction for a standalone (non-clustered) server."""

    def select(self, index: int) -> "Transaction":
        """Queue SELECT, switching the logical database for later commands."""
        if index < 0:
            raise ValueError("database index must be non-negative")
        return self._add("SELECT", index)


class ClusterTransaction(BaseTransaction):
    """
    Transaction for a cluster.

    All keys touched by one cluster transaction are expected to live in
    the same hash slot; the server rejects the batch otherwise.
    """
