"""
Client Handles

A client handle owns its transport (connections) and its topology
snapshot. Nothing is shared between handles, so several independent
clients can live in one process.

Usage:
    async with Client(("localhost", 6379)) as client:
        outcome = await client.exec(Transaction().set("key", "foo").get("key"))
        # Completed(results=('OK', 'foo'))

    client = await ClusterClient.create(["localhost:7000"])
    outcome = await client.exec(ClusterTransaction().info(), SimpleRoute.ALL_PRIMARIES)
    # Completed(results=(MultiValue(...),))
"""

import logging
import random
from typing import Any, Iterable, Optional, Sequence

from .cluster.executor import ClusterExecutor, ErrorPolicy
from .cluster.routing import Route, SimpleRoute, SlotKeyRoute
from .cluster.topology import ClusterTopology, NodeAddress
from .config.settings import Settings, settings as default_settings
from .errors import ConnectionLostError, ProtocolError, ResponseError, TransportError
from .network.transport import TcpTransport, Transport
from .protocol.commands import Arg, Command
from .transaction.builder import BaseTransaction, ClusterTransaction, Transaction
from .transaction.outcome import ClusterValue, Completed, ExecOutcome

logger = logging.getLogger(__name__)

CLUSTER_SLOTS = Command.of("CLUSTER", "SLOTS")


class _BaseClient:
    """Shared plumbing of standalone and cluster handles."""

    transaction_class = BaseTransaction

    def __init__(
            self,
            topology: ClusterTopology,
            settings: Settings = None,
            transport: Transport = None,
            error_policy: Optional[ErrorPolicy] = None,
            database_id: int = 0,
    ):
        self.settings = settings if settings is not None else default_settings
        self.topology = topology
        self.transport = transport if transport is not None else TcpTransport(self.settings, database_id=database_id)
        self.error_policy = ErrorPolicy.parse(error_policy if error_policy is not None else self.settings.ERROR_POLICY)

    def _executor(self) -> ClusterExecutor:
        # Built per call so that every call sees the latest topology snapshot
        return ClusterExecutor(self.transport, self.topology, self.error_policy)

    def _check_transaction(self, transaction: BaseTransaction) -> None:
        if not isinstance(transaction, self.transaction_class):
            raise TypeError(
                f"{type(self).__name__}.exec expects a {self.transaction_class.__name__}, "
                f"got {type(transaction).__name__}"
            )

    async def close(self) -> None:
        """Close all connections owned by this handle."""
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class Client(_BaseClient):
    """
    Handle for a standalone (non-clustered) server.

    Attributes:
        address: The server address
        topology: Single-node topology owning every slot
    """

    transaction_class = Transaction

    def __init__(
            self,
            address=None,
            settings: Settings = None,
            transport: Transport = None,
            database_id: int = 0,
            error_policy: Optional[ErrorPolicy] = None,
    ):
        """
        Initialize the client.

        Args:
            address: (host, port) or "host:port" (default from settings)
            settings: Client settings (default: module-level settings)
            transport: Transport to use (default: TcpTransport)
            database_id: Logical database selected on connect
            error_policy: Handling of per-command errors (default from settings)
        """
        settings = settings if settings is not None else default_settings
        self.address = NodeAddress.parse(address if address is not None else (settings.HOST, settings.PORT))
        super().__init__(
            ClusterTopology.standalone(self.address),
            settings=settings,
            transport=transport,
            error_policy=error_policy,
            database_id=database_id,
        )

    async def exec(self, transaction: Transaction) -> ExecOutcome:
        """
        Execute a transaction.

        Returns:
            Completed with one plain value per command, or ABORTED
        """
        self._check_transaction(transaction)
        outcome = await self._executor().execute(transaction, SimpleRoute.DEFAULT)
        if isinstance(outcome, Completed):
            return outcome.flatten()
        return outcome

    async def custom_command(self, args: Iterable[Arg]) -> Any:
        """
        Send one arbitrary command outside a transaction.

        Raises:
            ResponseError: If the server rejected the command
        """
        result = await self._executor().send(Command.from_args(args))
        return result.value

    async def watch(self, keys: Sequence[str]) -> Any:
        """Watch keys; a later exec aborts if any of them changes first."""
        if not keys:
            raise ValueError("keys must not be empty")
        return await self.custom_command(["WATCH", *keys])

    async def unwatch(self) -> Any:
        return await self.custom_command(["UNWATCH"])


class ClusterClient(_BaseClient):
    """
    Handle for a cluster.

    Transactions are routed as a whole; see cluster.routing for the
    available policies.
    """

    transaction_class = ClusterTransaction

    def __init__(
            self,
            topology: ClusterTopology,
            settings: Settings = None,
            transport: Transport = None,
            error_policy: Optional[ErrorPolicy] = None,
            rng: Optional[random.Random] = None,
    ):
        """
        Initialize the client.

        Args:
            topology: Initial topology snapshot
            settings: Client settings (default: module-level settings)
            transport: Transport to use (default: TcpTransport)
            error_policy: Handling of per-command errors (default from settings)
            rng: Random source for topologies discovered by refresh_topology()
        """
        super().__init__(topology, settings=settings, transport=transport, error_policy=error_policy)
        self._rng = rng

    @classmethod
    async def create(
            cls,
            addresses: Iterable,
            settings: Settings = None,
            transport: Transport = None,
            error_policy: Optional[ErrorPolicy] = None,
            rng: Optional[random.Random] = None,
    ) -> "ClusterClient":
        """
        Build a client by discovering the topology from seed nodes.

        Raises:
            ConnectionLostError: If no seed node answered
        """
        seeds = [NodeAddress.parse(a) for a in addresses]
        if not seeds:
            raise ValueError("at least one seed address is required")

        client = cls(ClusterTopology.standalone(seeds[0], rng=rng), settings, transport, error_policy, rng)
        try:
            await client.refresh_topology(seeds)
        except BaseException:
            await client.close()
            raise
        return client

    async def refresh_topology(self, seeds: Optional[Sequence[NodeAddress]] = None) -> ClusterTopology:
        """
        Replace the topology snapshot with the reply of CLUSTER SLOTS.

        Nodes are tried in order until one answers. In-flight calls keep
        the snapshot they started with. Connections to nodes missing from
        the new snapshot are closed.

        Args:
            seeds: Nodes to ask (default: known nodes)

        Raises:
            ConnectionLostError: If no node answered
            ResponseError: If the node rejected CLUSTER SLOTS
            ProtocolError: If the reply is not a valid slot table
        """
        candidates = list(seeds) if seeds else list(self.topology.nodes)
        last_error: Optional[TransportError] = None

        for node in candidates:
            try:
                completion = await self.transport.submit((CLUSTER_SLOTS,), (node,), atomic=False)
            except TransportError as e:
                logger.warning(f"Topology refresh via {node} failed: {e}")
                last_error = e
                continue

            reply = completion.per_node[node][0]
            if isinstance(reply, ResponseError):
                raise reply

            try:
                topology = ClusterTopology.from_cluster_slots(reply, default_host=node.host, rng=self._rng)
            except (TypeError, ValueError, IndexError) as e:
                raise ProtocolError(f"malformed CLUSTER SLOTS reply from {node}: {e}") from e

            self.topology = topology
            await self.transport.retain(topology.nodes)
            logger.info(f"Topology refreshed via {node}: {topology.describe()}")
            return topology

        raise ConnectionLostError("no node answered CLUSTER SLOTS") from last_error

    async def exec(self, transaction: ClusterTransaction, route: Optional[Route] = None) -> ExecOutcome:
        """
        Execute a transaction.

        Args:
            transaction: The transaction; consumed by this call
            route: Routing policy. When omitted the batch is routed by its
                first key and results are plain values; with an explicit
                route every result is a SingleValue or MultiValue.

        Returns:
            Completed, or ABORTED when a watched key changed
        """
        self._check_transaction(transaction)
        outcome = await self._executor().execute(transaction, SimpleRoute.DEFAULT if route is None else route)
        if route is None and isinstance(outcome, Completed):
            return outcome.flatten()
        return outcome

    async def custom_command(self, args: Iterable[Arg], route: Optional[Route] = None) -> ClusterValue:
        """
        Send one arbitrary command outside a transaction.

        Raises:
            ResponseError: If a node rejected the command
        """
        return await self._executor().send(Command.from_args(args), route)

    async def watch(self, keys: Sequence[str]) -> ClusterValue:
        """Watch keys on the primary owning the first key."""
        if not keys:
            raise ValueError("keys must not be empty")
        return await self.custom_command(["WATCH", *keys], SlotKeyRoute(keys[0]))

    async def unwatch(self, route: Route = SimpleRoute.ALL_PRIMARIES) -> ClusterValue:
        return await self.custom_command(["UNWATCH"], route)
