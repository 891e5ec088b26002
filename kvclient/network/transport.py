"""
Transport Module

Submits a batch of commands to a resolved set of nodes and gathers the
raw per-node replies into a RawCompletion.

The transport owns connections and their lifecycle. It performs exactly
one exchange per node per submit; it never retries a request.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from ..cluster.topology import NodeAddress
from ..config.settings import Settings, settings as default_settings
from ..protocol.commands import Command
from .connection import NodeConnection

logger = logging.getLogger(__name__)


class CompletionStatus(Enum):
    """Overall status of a submitted batch."""
    OK = "ok"
    ABORTED = "aborted"


@dataclass
class RawCompletion:
    """
    Raw result of one submit.

    Attributes:
        status: ABORTED when any node reported a watch failure
        per_node: node -> list of decoded replies, in command order;
                  None for a node whose EXEC returned a null array
    """
    status: CompletionStatus
    per_node: Dict[NodeAddress, Optional[List[Any]]] = field(default_factory=dict)


class Transport(Protocol):
    """What an executor needs from the network layer."""

    async def submit(
            self,
            commands: Sequence[Command],
            targets: Sequence[NodeAddress],
            atomic: bool = True,
    ) -> RawCompletion:
        ...

    async def retain(self, nodes: Sequence[NodeAddress]) -> None:
        ...

    async def close(self) -> None:
        ...


class TcpTransport:
    """
    Transport over one persistent TCP connection per node.

    Connections are created on first use and re-created after a failure.
    Batches for different nodes run concurrently.
    """

    def __init__(self, settings: Settings = None, database_id: int = 0):
        """
        Initialize the transport.

        Args:
            settings: Client settings (default: module-level settings)
            database_id: Logical database selected on every new connection
        """
        self.settings = settings if settings is not None else default_settings
        self.database_id = database_id
        self._connections: Dict[NodeAddress, NodeConnection] = {}

    def connection(self, address: NodeAddress) -> NodeConnection:
        """Return the connection for a node, creating it lazily."""
        conn = self._connections.get(address)
        if conn is None:
            conn = NodeConnection(address, self.settings, database_id=self.database_id)
            self._connections[address] = conn
        return conn

    @property
    def nodes(self) -> Tuple[NodeAddress, ...]:
        """Nodes that currently have a connection object."""
        return tuple(self._connections)

    async def retain(self, nodes: Sequence[NodeAddress]) -> None:
        """
        Close and forget connections to nodes outside ``nodes``.

        Called after a topology refresh so departed nodes do not keep
        sockets open.
        """
        keep = set(nodes)
        departed = [addr for addr in self._connections if addr not in keep]
        for addr in departed:
            conn = self._connections.pop(addr)
            logger.info(f"Closing connection to departed node {addr}")
            await conn.close()

    async def submit(
            self,
            commands: Sequence[Command],
            targets: Sequence[NodeAddress],
            atomic: bool = True,
    ) -> RawCompletion:
        """
        Send ``commands`` to every target and wait for all replies.

        Args:
            commands: Commands in execution order
            targets: Resolved target nodes
            atomic: Wrap the batch in MULTI/EXEC

        Returns:
            RawCompletion with one entry per target

        Raises:
            TransportError: If any node exchange failed
            ExecAbortError: If a node discarded the transaction
        """
        logger.debug(f"Submitting {len(commands)} command(s) to {len(targets)} node(s), atomic={atomic}")

        replies = await asyncio.gather(
            *(self.connection(node).execute(commands, atomic=atomic) for node in targets)
        )

        per_node = dict(zip(targets, replies))
        status = CompletionStatus.ABORTED if any(r is None for r in replies) else CompletionStatus.OK
        return RawCompletion(status=status, per_node=per_node)

    async def close(self) -> None:
        """Close every open connection."""
        connections, self._connections = list(self._connections.values()), {}
        for conn in connections:
            await conn.close()
