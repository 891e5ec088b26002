"""Network module: node connections and the transport used by executors."""

from .connection import NodeConnection
from .transport import CompletionStatus, RawCompletion, TcpTransport, Transport

__all__ = ["NodeConnection", "CompletionStatus", "RawCompletion", "TcpTransport", "Transport"]
