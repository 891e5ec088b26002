"""Protocol module for KV Cluster Client."""

from .commands import Command, ResponseType, first_key
from .resp import RespReader, encode_command, encode_commands
from .responses import shape_response

__all__ = [
    "Command",
    "ResponseType",
    "first_key",
    "RespReader",
    "encode_command",
    "encode_commands",
    "shape_response",
]
