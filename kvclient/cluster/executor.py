"""
Cluster Executor Module

Runs a built transaction against the nodes selected by a routing
policy, in one round-trip:

    1. take the commands out of the transaction (the builder is consumed)
    2. resolve the route once against the current topology
    3. submit through the transport and await the completion
    4. abort detection, then result reconciliation

The executor keeps no state between calls and never retries; transport
failures propagate to the caller unchanged.
"""

import logging
from enum import Enum
from typing import Optional, Union

from ..errors import CommandFailedError
from ..network.transport import Transport
from ..protocol.commands import Command, first_key
from ..transaction.builder import BaseTransaction
from ..transaction.outcome import ABORTED, ClusterValue, Completed, ExecOutcome
from .abort import is_aborted
from .reconciler import reconcile
from .routing import Route, SimpleRoute
from .topology import ClusterTopology

logger = logging.getLogger(__name__)


class ErrorPolicy(Enum):
    """What to do with per-command error replies in a completed transaction."""
    VALUE = "value"   # keep the ResponseError in its position
    RAISE = "raise"   # raise CommandFailedError for the first failed position

    @classmethod
    def parse(cls, value: Union["ErrorPolicy", str]) -> "ErrorPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"unknown error policy: {value!r}") from None


class ClusterExecutor:
    """
    Submits transactions and single commands through a transport.

    Attributes:
        transport: Network collaborator performing the round-trip
        topology: Snapshot used to resolve routes
        error_policy: Handling of per-command error replies
    """

    def __init__(
            self,
            transport: Transport,
            topology: ClusterTopology,
            error_policy: ErrorPolicy = ErrorPolicy.VALUE,
    ):
        self.transport = transport
        self.topology = topology
        self.error_policy = ErrorPolicy.parse(error_policy)

    async def execute(
            self,
            transaction: BaseTransaction,
            route: Route = SimpleRoute.DEFAULT,
    ) -> ExecOutcome:
        """
        Execute a transaction atomically on the routed node(s).

        Args:
            transaction: The transaction; consumed by this call
            route: Routing policy for the whole batch

        Returns:
            Completed with one ClusterValue per command, or ABORTED when a
            watched key changed

        Raises:
            TransactionConsumedError: If the transaction was already executed
            TransportError: If the round-trip failed (outcome unknown)
            ExecAbortError: If the server discarded the transaction
            CommandFailedError: Under ErrorPolicy.RAISE, for a failed command
        """
        commands = transaction.take_commands()
        targets = self.topology.current_targets(route, first_key(commands))

        logger.debug(f"Executing transaction of {len(commands)} command(s) on {[str(t) for t in targets]}")

        completion = await self.transport.submit(commands, targets, atomic=True)

        if is_aborted(completion):
            logger.info(f"Transaction of {len(commands)} command(s) aborted: watched key changed")
            return ABORTED

        outcome = Completed(reconcile(completion, targets, commands))

        if self.error_policy is ErrorPolicy.RAISE:
            failures = outcome.errors()
            if failures:
                index, node, error = failures[0]
                raise CommandFailedError(index, error, outcome, node=node)

        return outcome

    async def send(self, command: Command, route: Optional[Route] = None) -> ClusterValue:
        """
        Send one command outside a transaction.

        Args:
            command: The command to send
            route: Routing policy (DEFAULT when omitted)

        Returns:
            SingleValue or MultiValue depending on the number of targets

        Raises:
            ResponseError: If the server rejected the command
            TransportError: If the round-trip failed
        """
        route = SimpleRoute.DEFAULT if route is None else route
        targets = self.topology.current_targets(route, command.key)
        completion = await self.transport.submit((command,), targets, atomic=False)
        result = reconcile(completion, targets, (command,))[0]

        failures = result.errors()
        if failures:
            raise failures[0][1]
        return result
