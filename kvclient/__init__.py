"""
KV Cluster Client: Transactions for a clustered in-memory key-value store

An asyncio client that batches commands into atomic transactions,
routes them to one or more cluster nodes and reconciles the per-node
replies into a single typed result.
"""

from .client import Client, ClusterClient
from .cluster.executor import ClusterExecutor, ErrorPolicy
from .cluster.routing import SimpleRoute, SlotIdRoute, SlotKeyRoute, SlotType
from .cluster.topology import ClusterTopology, NodeAddress
from .errors import (
    CommandFailedError,
    ConnectionLostError,
    ExecAbortError,
    KVClientError,
    ProtocolError,
    RequestTimeoutError,
    ResponseError,
    RoutingError,
    TransactionConsumedError,
    TransportError,
)
from .protocol.commands import Command, ResponseType
from .transaction.builder import ClusterTransaction, Transaction
from .transaction.outcome import ABORTED, Aborted, Completed, MultiValue, NodeValue, SingleValue

__version__ = "1.0.0"

__all__ = [
    "ABORTED",
    "Aborted",
    "Client",
    "ClusterClient",
    "ClusterExecutor",
    "ClusterTopology",
    "ClusterTransaction",
    "Command",
    "CommandFailedError",
    "Completed",
    "ConnectionLostError",
    "ErrorPolicy",
    "ExecAbortError",
    "KVClientError",
    "MultiValue",
    "NodeAddress",
    "NodeValue",
    "ProtocolError",
    "RequestTimeoutError",
    "ResponseError",
    "ResponseType",
    "RoutingError",
    "SimpleRoute",
    "SingleValue",
    "SlotIdRoute",
    "SlotKeyRoute",
    "SlotType",
    "Transaction",
    "TransactionConsumedError",
    "TransportError",
]
