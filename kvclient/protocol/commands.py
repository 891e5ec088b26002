"""
Command Descriptor Definitions

This module defines the immutable command descriptor that transactions
are built from, plus the lookup used to find the routing key of a batch.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterable, Optional, Tuple, Union

Arg = Union[str, bytes, int, float]


class ResponseType(Enum):
    """How the raw reply of a command is shaped before it reaches the caller."""
    RAW = auto()
    BOOL = auto()
    FLOAT = auto()
    SET = auto()
    MAP = auto()


# Commands whose first argument is not a key
KEYLESS_COMMANDS = frozenset({
    "AUTH",
    "CLIENT",
    "CLUSTER",
    "CONFIG",
    "DBSIZE",
    "DISCARD",
    "ECHO",
    "EXEC",
    "FLUSHALL",
    "FLUSHDB",
    "HELLO",
    "INFO",
    "LASTSAVE",
    "MULTI",
    "PING",
    "QUIT",
    "SELECT",
    "TIME",
    "UNWATCH",
})


def encode_arg(arg: Arg) -> bytes:
    """Encode a single argument into the opaque byte form sent on the wire."""
    if isinstance(arg, bytes):
        return arg
    if isinstance(arg, str):
        return arg.encode('utf-8')
    if isinstance(arg, bool):
        # bool is an int subclass; refuse instead of sending "True"
        raise TypeError("boolean arguments are not supported")
    if isinstance(arg, (int, float)):
        return str(arg).encode('ascii')
    raise TypeError(f"unsupported argument type: {type(arg).__name__}")


@dataclass(frozen=True)
class Command:
    """
    An immutable (name, arguments) pair.

    Attributes:
        name: Upper-cased command name, e.g. "SET"
        args: Arguments as byte strings, in wire order
        response_type: Shaping applied to this command's reply
    """
    name: str
    args: Tuple[bytes, ...] = ()
    response_type: ResponseType = field(default=ResponseType.RAW, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ValueError("command name must not be empty")
        object.__setattr__(self, "name", self.name.upper())
        object.__setattr__(self, "args", tuple(encode_arg(a) for a in self.args))

    @classmethod
    def of(cls, name: str, *args: Arg, response_type: ResponseType = ResponseType.RAW) -> "Command":
        """Build a command from positional arguments."""
        return cls(name=name, args=tuple(args), response_type=response_type)

    @classmethod
    def from_args(cls, args: Iterable[Arg]) -> "Command":
        """Build a command from a full argument list, name first."""
        parts = list(args)
        if not parts:
            raise ValueError("custom command requires at least a command name")
        name = parts[0].decode() if isinstance(parts[0], bytes) else str(parts[0])
        return cls(name=name, args=tuple(parts[1:]))

    @property
    def key(self) -> Optional[bytes]:
        """The routing key of this command, if it has one."""
        if self.name in KEYLESS_COMMANDS or not self.args:
            return None
        return self.args[0]

    def __repr__(self) -> str:
        return f"Command({self.name}, {len(self.args)} args)"


def first_key(commands: Iterable[Command]) -> Optional[bytes]:
    """Return the key of the first command that carries one."""
    for command in commands:
        key = command.key
        if key is not None:
            return key
    return None
